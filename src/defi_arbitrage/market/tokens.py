"""
Token reference data.

Maps CoinGecko ids and ticker symbols to token metadata. Addresses are
Ethereum mainnet contracts; tokens without an EVM deployment use the
zero address.
"""

from dataclasses import dataclass
from typing import Final

from defi_arbitrage.core.types import TokenInfo


ZERO_ADDRESS: Final[str] = "0x0000000000000000000000000000000000000000"


@dataclass(slots=True, frozen=True)
class TokenEntry:
    """Registry entry linking a price-API id to token metadata."""

    coingecko_id: str
    token: TokenInfo


_ENTRIES: Final[tuple[TokenEntry, ...]] = (
    TokenEntry("ethereum", TokenInfo("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "Wrapped Ether", 18)),
    TokenEntry("bitcoin", TokenInfo("WBTC", "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", "Wrapped Bitcoin", 8)),
    TokenEntry("uniswap", TokenInfo("UNI", "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984", "Uniswap", 18)),
    TokenEntry("chainlink", TokenInfo("LINK", "0x514910771AF9Ca656af840dff83E8264EcF986CA", "Chainlink", 18)),
    TokenEntry("aave", TokenInfo("AAVE", "0x7Fc66500c84A76Ad7e9c93437bFc5Ac33E2DDaE9", "Aave", 18)),
    TokenEntry("usd-coin", TokenInfo("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USD Coin", 6)),
    TokenEntry("tether", TokenInfo("USDT", "0xdAC17F958D2ee523a2206206994597C13D831ec7", "Tether", 6)),
    TokenEntry("dai", TokenInfo("DAI", "0x6B175474E89094C44Da98b954EedeAC495271d0F", "Dai", 18)),
    # Cosmos-ecosystem tokens quoted by the simulated venue
    TokenEntry("sei-network", TokenInfo("SEI", ZERO_ADDRESS, "Sei", 6)),
    TokenEntry("cosmos", TokenInfo("ATOM", ZERO_ADDRESS, "Cosmos Hub", 6)),
    TokenEntry("osmosis", TokenInfo("OSMO", ZERO_ADDRESS, "Osmosis", 6)),
    TokenEntry("injective-protocol", TokenInfo("INJ", ZERO_ADDRESS, "Injective", 18)),
    TokenEntry("juno-network", TokenInfo("JUNO", ZERO_ADDRESS, "Juno", 6)),
)


class TokenRegistry:
    """
    Lookup of token metadata by CoinGecko id or ticker symbol.

    Lookups are case-insensitive. Unknown names resolve to a placeholder
    token with the zero address so scans can still proceed on price alone.
    """

    def __init__(self, entries: tuple[TokenEntry, ...] = _ENTRIES) -> None:
        self._by_key: dict[str, TokenEntry] = {}
        for entry in entries:
            self.register(entry)

    def register(self, entry: TokenEntry) -> None:
        """Add or replace an entry under both its id and symbol."""
        self._by_key[entry.coingecko_id.lower()] = entry
        self._by_key[entry.token.symbol.lower()] = entry

    def get(self, name: str) -> TokenEntry | None:
        """Get the entry for an id or symbol."""
        return self._by_key.get(name.lower())

    def resolve(self, name: str) -> TokenInfo:
        """
        Get token metadata for an id or symbol.

        Args:
            name: CoinGecko id (``ethereum``) or symbol (``WETH``).

        Returns:
            Known token metadata, or a zero-address placeholder.
        """
        entry = self.get(name)
        if entry is not None:
            return entry.token
        return TokenInfo(
            symbol=name.upper(),
            address=ZERO_ADDRESS,
            name=name[:1].upper() + name[1:],
            decimals=18,
        )

    def coingecko_id(self, name: str) -> str:
        """CoinGecko id for a symbol; unknown names are passed through lowercased."""
        entry = self.get(name)
        return entry.coingecko_id if entry is not None else name.lower()

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._by_key

    def __len__(self) -> int:
        return len({id(e) for e in self._by_key.values()})


# Pairs scanned against live price APIs by default
DEFAULT_LIVE_PAIRS: Final[tuple[tuple[str, str], ...]] = (
    ("ethereum", "bitcoin"),
    ("ethereum", "uniswap"),
    ("chainlink", "aave"),
)

# Pairs quoted by the simulated venue by default
DEFAULT_MOCK_PAIRS: Final[tuple[tuple[str, str], ...]] = (
    ("SEI", "USDC"),
    ("ATOM", "USDC"),
    ("OSMO", "SEI"),
    ("INJ", "USDC"),
    ("JUNO", "ATOM"),
)
