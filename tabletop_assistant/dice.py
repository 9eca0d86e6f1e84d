"""
Dice notation for the ``roll`` command.

Grammar::

    [N]d<S>[+|-<modifier>]

    N         Number of dice (default 1, max 100)
    S         Sides per die (2 to 1000)
    modifier  Integer added to or subtracted from the total

Whitespace around the modifier operator is tolerated, so ``d10+7`` and
``d10 + 7`` are the same roll.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidArgument


@dataclass(frozen=True)
class DiceExpression:
    """A parsed dice notation expression."""

    count: int
    sides: int
    modifier: int

    def __str__(self) -> str:
        base = f"{self.count}d{self.sides}" if self.count > 1 else f"d{self.sides}"
        if self.modifier > 0:
            return f"{base}+{self.modifier}"
        elif self.modifier < 0:
            return f"{base}{self.modifier}"
        return base


@dataclass(frozen=True)
class DiceResult:
    """Outcome of rolling a DiceExpression, individual dice included."""

    expression: DiceExpression
    rolls: tuple[int, ...]
    total: int

    @property
    def subtotal(self) -> int:
        return sum(self.rolls)

    def format_summary(self) -> str:
        """One-line summary, e.g. ``2d8+5 → [7, 3] + 5 = 15``."""
        rolls_str = ", ".join(str(r) for r in self.rolls)
        mod = self.expression.modifier

        if mod > 0:
            return f"{self.expression} → [{rolls_str}] + {mod} = {self.total}"
        elif mod < 0:
            return f"{self.expression} → [{rolls_str}] - {abs(mod)} = {self.total}"
        return f"{self.expression} → [{rolls_str}] = {self.total}"

    def to_dict(self) -> dict:
        return {
            "expression": str(self.expression),
            "count": self.expression.count,
            "sides": self.expression.sides,
            "modifier": self.expression.modifier,
            "rolls": list(self.rolls),
            "subtotal": self.subtotal,
            "total": self.total,
        }


# Groups: (count)(sides)(operator)(modifier_value)
_DICE_PATTERN = re.compile(
    r'^(\d*)d(\d+)(?:\s*([+-])\s*(\d+))?$',
    re.IGNORECASE
)

MAX_DICE = 100
MIN_SIDES = 2
MAX_SIDES = 1000
MAX_MODIFIER = 10000


def parse_dice(notation: str) -> Optional[DiceExpression]:
    """Parse a dice notation string.

    Returns:
        DiceExpression, or None if ``notation`` is not dice notation at all

    Raises:
        InvalidArgument: if the notation parses but breaks a limit
    """
    notation = notation.strip()
    match = _DICE_PATTERN.match(notation)
    if match is None:
        return None

    count_str, sides_str, operator, mod_str = match.groups()

    count = int(count_str) if count_str else 1
    sides = int(sides_str)
    modifier = 0

    if operator and mod_str:
        modifier = int(mod_str)
        if operator == '-':
            modifier = -modifier

    if count < 1 or count > MAX_DICE:
        raise InvalidArgument(f"Dice count must be between 1 and {MAX_DICE}, got {count}")

    if sides < MIN_SIDES or sides > MAX_SIDES:
        raise InvalidArgument(f"Die sides must be between {MIN_SIDES} and {MAX_SIDES}, got {sides}")

    if abs(modifier) > MAX_MODIFIER:
        raise InvalidArgument(f"Modifier must be between -{MAX_MODIFIER} and +{MAX_MODIFIER}")

    return DiceExpression(count=count, sides=sides, modifier=modifier)


def roll_dice(expression: DiceExpression, rng: Optional[random.Random] = None) -> DiceResult:
    """Roll the dice defined by ``expression``."""
    rng = rng or random
    rolls = tuple(rng.randint(1, expression.sides) for _ in range(expression.count))
    total = sum(rolls) + expression.modifier
    return DiceResult(expression=expression, rolls=rolls, total=total)
