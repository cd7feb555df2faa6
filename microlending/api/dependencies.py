"""
Lending system dependency
"""

from typing import Optional

from ..service import LendingSystem


_lending_system: Optional[LendingSystem] = None


def get_lending_system() -> LendingSystem:
    """Shared lending system, built from configuration on first use"""
    global _lending_system
    if _lending_system is None:
        _lending_system = LendingSystem()
    return _lending_system
