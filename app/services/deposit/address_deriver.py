"""
Address deriver.

Deterministic BIP-44 derivation of per-owner deposit addresses from the
master mnemonic. The signer of a derived account is only handed to the
sweep engine; nothing here logs key material.
"""

from dataclasses import dataclass, field

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger

from app.config.constants import DERIVATION_PATH_TEMPLATE
from app.utils.exceptions import ConfigurationError, InvalidIndexError

# Non-hardened BIP-32 child indexes stop at 2**31 - 1
MAX_DERIVATION_INDEX = 2**31 - 1

Account.enable_unaudited_hdwallet_features()


@dataclass(frozen=True)
class DerivedAccount:
    """Deposit account derived at one index."""

    index: int
    address: str
    signer: LocalAccount = field(repr=False, compare=False)


class AddressDeriver:
    """
    Derives deposit accounts along m/44'/60'/0'/0/{index}.

    The same mnemonic and index always yield the same address.
    """

    def __init__(self, mnemonic: str | None) -> None:
        """
        Initialize deriver.

        Args:
            mnemonic: BIP-39 master mnemonic

        Raises:
            ConfigurationError: If the mnemonic is missing or invalid
        """
        if not mnemonic or not mnemonic.strip():
            raise ConfigurationError("MASTER_MNEMONIC is not configured")

        self._mnemonic = " ".join(mnemonic.split())
        self._cache: dict[int, DerivedAccount] = {}

        # Fail fast on a bad mnemonic instead of on the first sweep
        try:
            first = self._derive_uncached(0)
        except Exception as e:
            raise ConfigurationError(
                f"MASTER_MNEMONIC is not a valid BIP-39 mnemonic ({type(e).__name__})"
            ) from None
        self._cache[0] = first
        logger.info("Address deriver initialized")

    def __repr__(self) -> str:
        return f"AddressDeriver(cached={len(self._cache)})"

    def derive(self, index: int) -> DerivedAccount:
        """
        Derive the deposit account at an index.

        Args:
            index: Non-negative derivation index

        Returns:
            Derived account (address lowercase)

        Raises:
            InvalidIndexError: If index is negative or not an integer
        """
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidIndexError(f"Derivation index must be an integer, got {index!r}")
        if index < 0 or index > MAX_DERIVATION_INDEX:
            raise InvalidIndexError(f"Derivation index out of range: {index}")

        cached = self._cache.get(index)
        if cached is None:
            cached = self._derive_uncached(index)
            self._cache[index] = cached
        return cached

    def address_at(self, index: int) -> str:
        """Derive only the address at an index."""
        return self.derive(index).address

    def _derive_uncached(self, index: int) -> DerivedAccount:
        signer = Account.from_mnemonic(
            self._mnemonic,
            account_path=DERIVATION_PATH_TEMPLATE.format(index=index),
        )
        return DerivedAccount(
            index=index,
            address=signer.address.lower(),
            signer=signer,
        )
