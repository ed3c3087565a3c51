"""
Token Registry — known Solana mints, decimal fallback, slot assignment
======================================================================

The downstream sheet has two fixed columns: a SOL slot (``q_sol``) and a
USDC slot (``u_usdc``). A DLMM pool's X/Y order is defined by the venue,
so amounts are placed by mint identity, not by position.

Reference:
  Wrapped SOL mint : So11111111111111111111111111111111111111112 (9 decimals)
  USDC mint        : EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v (6 decimals)
"""

from dataclasses import dataclass
from typing import Optional, Tuple

MINT_WSOL = "So11111111111111111111111111111111111111112"
MINT_USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

KNOWN_DECIMALS: dict[str, int] = {
    MINT_WSOL: 9,
    MINT_USDC: 6,
}

SOL_LIKE_MINTS: frozenset = frozenset({MINT_WSOL})
USD_STABLE_MINTS: frozenset = frozenset({MINT_USDC})

# Slot assignment outcomes
IDENTITY = "identity"
POSITIONAL = "positional"


@dataclass(frozen=True)
class AssetReference:
    """A pool side: its mint (or symbol) and decimal scale, if known."""

    mint: Optional[str]
    scale: Optional[int] = None

    def with_fallback_scale(self) -> "AssetReference":
        """Fill a missing scale from the static table."""
        if self.scale is not None:
            return self
        return AssetReference(self.mint, decimals_by_mint(self.mint))


def decimals_by_mint(mint: Optional[str]) -> Optional[int]:
    """
    Canonical decimals for well-known mints, else ``None``.

    Examples:
        >>> decimals_by_mint(MINT_WSOL)
        9
        >>> decimals_by_mint("unknown") is None
        True
    """
    if not mint:
        return None
    return KNOWN_DECIMALS.get(mint.strip())


def is_sol_mint(mint: Optional[str]) -> bool:
    return bool(mint) and mint.strip() in SOL_LIKE_MINTS


def is_stable_mint(mint: Optional[str]) -> bool:
    return bool(mint) and mint.strip() in USD_STABLE_MINTS


def assign_slots(mint_x: Optional[str], mint_y: Optional[str]) -> Tuple[str, str, str]:
    """
    Decide which pool side feeds the SOL slot and which the USDC slot.

    Returns:
        (sol_side, usdc_side, method) where sides are ``"x"``/``"y"`` and
        method is ``"identity"`` when both mints were recognised, or
        ``"positional"`` when the venue order (X→SOL, Y→USDC) is used.

    Examples:
        >>> assign_slots(MINT_USDC, MINT_WSOL)
        ('y', 'x', 'identity')
        >>> assign_slots("A", "B")
        ('x', 'y', 'positional')
    """
    if (is_sol_mint(mint_x) and is_sol_mint(mint_y)) or (
        is_stable_mint(mint_x) and is_stable_mint(mint_y)
    ):
        return "x", "y", POSITIONAL
    if is_sol_mint(mint_x) and is_stable_mint(mint_y):
        return "x", "y", IDENTITY
    if is_stable_mint(mint_x) and is_sol_mint(mint_y):
        return "y", "x", IDENTITY
    # One side recognised: the other side takes the remaining slot
    if is_stable_mint(mint_x) and not is_stable_mint(mint_y):
        return "y", "x", IDENTITY
    if is_sol_mint(mint_y) and not is_sol_mint(mint_x):
        return "y", "x", IDENTITY
    if is_sol_mint(mint_x) or is_stable_mint(mint_y):
        return "x", "y", IDENTITY
    return "x", "y", POSITIONAL
