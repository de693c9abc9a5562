"""Players, corporations, companies and the bank.

Every entity that can hold money shares the same spending rules: money moves
from one entity to another and nobody may go below zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Union

from .errors import GameError

if TYPE_CHECKING:
    from .abilities import Ability
    from .tile import City


class Entity:
    """Shared behaviour of money-holding entities."""

    name: str
    cash: int

    is_player = False
    is_corporation = False
    is_company = False
    operator = False

    @property
    def id(self) -> str:
        return self.name

    @property
    def player(self) -> Optional[Player]:
        """The player ultimately controlling this entity."""
        return None

    def spend(self, amount: int, receiver: Entity) -> None:
        """Pay money to another entity.

        Raises:
            ValueError: If the amount is negative.
            GameError: If the entity cannot afford it.
        """
        if amount < 0:
            raise ValueError(f"Cannot spend a negative amount: {amount}")
        if amount > self.cash:
            raise GameError(f"{self.name} has {self.cash} and cannot spend {amount}")
        self.cash -= amount
        receiver.cash += amount

    def add_company(self, company: Company) -> None:
        """Take ownership of a company."""
        companies: list[Company] = getattr(self, "companies")
        if company.owner is not None and company in getattr(company.owner, "companies", []):
            company.owner.companies.remove(company)
        company.owner = self
        companies.append(company)


@dataclass(eq=False)
class Bank(Entity):
    """The bank, paying and receiving money."""

    cash: int = 0
    name: str = "Bank"


@dataclass(eq=False)
class Player(Entity):
    """A human player."""

    name: str
    cash: int = 0
    companies: list[Company] = field(default_factory=list)

    is_player = True

    @property
    def player(self) -> Player:
        return self

    def __repr__(self) -> str:
        return f"Player({self.name})"


@dataclass(eq=False)
class Token:
    """A station marker belonging to a corporation.

    Attributes:
        corporation: The owning corporation.
        city: City the token sits in, None if unplaced.
        used: Whether the token is on the map.
    """

    corporation: Corporation
    city: Optional[City] = None
    used: bool = False

    def place(self, city: City) -> None:
        city.place_token(self)
        self.used = True
        if city.hex is not None:
            city.hex.touch()

    def remove(self) -> None:
        """Take the token off the map."""
        city = self.city
        if city is None:
            return
        city.remove_token(self)
        self.city = None
        self.used = False
        if city.hex is not None:
            city.hex.touch()

    def __repr__(self) -> str:
        return f"Token({self.corporation.sym}, used={self.used})"


@dataclass(eq=False)
class Corporation(Entity):
    """A corporation operating on the map.

    Attributes:
        sym: Short symbol (e.g. "PRR").
        name: Full name, defaults to the symbol.
        cash: Treasury.
        owner: President.
        coordinates: Home hex coordinate.
        tokens: All tokens, placed or not.
        companies: Companies owned by the corporation.
        abilities: Abilities granted directly to the corporation.
        loans: Outstanding loan amounts.
        total_shares: Number of shares, caps the number of loans.
    """

    sym: str
    name: str = ""
    cash: int = 0
    owner: Optional[Player] = None
    coordinates: Optional[str] = None
    tokens: list[Token] = field(default_factory=list)
    companies: list[Company] = field(default_factory=list)
    abilities: list[Ability] = field(default_factory=list)
    loans: list[int] = field(default_factory=list)
    total_shares: int = 10

    is_corporation = True
    operator = True

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.sym
        for ability in self.abilities:
            ability.owner = self

    @property
    def id(self) -> str:
        return self.sym

    @property
    def player(self) -> Optional[Player]:
        return self.owner

    def add_tokens(self, count: int) -> None:
        self.tokens.extend(Token(corporation=self) for _ in range(count))

    @property
    def placed_tokens(self) -> list[Token]:
        return [token for token in self.tokens if token.used]

    def next_token(self) -> Optional[Token]:
        """Return the first unplaced token, if any."""
        return next((token for token in self.tokens if not token.used), None)

    def add_ability(self, ability: Ability) -> None:
        ability.owner = self
        self.abilities.append(ability)

    def remove_ability(self, ability: Ability) -> None:
        if ability in self.abilities:
            self.abilities.remove(ability)

    @property
    def all_abilities(self) -> list[Ability]:
        """Abilities of the corporation and of every company it owns."""
        owned = [a for company in self.companies for a in company.all_abilities]
        return [*self.abilities, *owned]

    def __repr__(self) -> str:
        return f"Corporation({self.sym})"


@dataclass(eq=False)
class Company(Entity):
    """A private company, usually carrying special abilities.

    Attributes:
        sym: Short symbol (e.g. "PSM").
        name: Full name, defaults to the symbol.
        owner: Owning player or corporation.
        abilities: Special abilities of the company.
        min_price: Lowest price a corporation may pay for it.
        value: Face value.
        closed: Closed companies have no effect on the game.
    """

    sym: str
    name: str = ""
    owner: Optional[Union[Player, Corporation]] = None
    abilities: list[Ability] = field(default_factory=list)
    min_price: int = 0
    value: int = 0
    closed: bool = False
    cash: int = 0

    is_company = True

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.sym
        for ability in self.abilities:
            ability.owner = self

    @property
    def id(self) -> str:
        return self.sym

    @property
    def player(self) -> Optional[Player]:
        return self.owner.player if self.owner is not None else None

    @property
    def corporation(self) -> Optional[Corporation]:
        """The corporation owning this company, if it is owned by one."""
        if self.owner is not None and self.owner.is_corporation:
            return self.owner
        return None

    @property
    def all_abilities(self) -> list[Ability]:
        return list(self.abilities)

    def add_ability(self, ability: Ability) -> None:
        ability.owner = self
        self.abilities.append(ability)

    def remove_ability(self, ability: Ability) -> None:
        if ability in self.abilities:
            self.abilities.remove(ability)

    def close(self) -> None:
        """Close the company, dropping its abilities and leaving its owner."""
        self.closed = True
        self.abilities.clear()
        if self.owner is not None and self in self.owner.companies:
            self.owner.companies.remove(self)
        self.owner = None

    def __repr__(self) -> str:
        return f"Company({self.sym})"
