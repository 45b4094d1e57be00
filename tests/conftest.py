"""
Test configuration and fixtures
"""
import sys
from pathlib import Path

# Add project root and src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(project_root))
sys.path.insert(0, str(src_path))

import pytest

from tokenvest.core.token import UINT256_MAX, ERC20Token
from tokenvest.core.vault import VestingVault

ADMIN = "0xadmin"
RECOVERY = "0xrecovery"
ALICE = "0xalice"
BOB = "0xbob"
CUSTODY = "0xvault"
ADMIN_SUPPLY = 10**24


class FakeClock:
    """Settable time source for deterministic unlock math."""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token():
    token = ERC20Token(name="Vesting Token", symbol="VEST", owner=ADMIN)
    token.mint(ADMIN, ADMIN, ADMIN_SUPPLY)
    return token


@pytest.fixture
def vault(token, clock):
    """Vault with an unlimited administrator allowance."""
    vault = VestingVault.deploy(
        token,
        administrator=ADMIN,
        recovery_account=RECOVERY,
        custody_address=CUSTODY,
        time_provider=clock,
    )
    token.approve(ADMIN, CUSTODY, UINT256_MAX)
    return vault
