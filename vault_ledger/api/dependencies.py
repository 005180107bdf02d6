"""
Shared API dependencies: the vault system instance and the caller's identity
"""

import threading
from typing import Optional

from fastapi import Header, HTTPException

from ..config import get_config
from ..logging_config import setup_logging
from ..system import VaultSystem


_vault_system: Optional[VaultSystem] = None
_system_lock = threading.Lock()


def get_vault_system() -> VaultSystem:
    """Lazily build the process-wide VaultSystem from configuration"""
    global _vault_system
    with _system_lock:
        if _vault_system is None:
            config = get_config()
            setup_logging(config.log_level, log_file=config.log_file)
            _vault_system = VaultSystem(config=config)
        return _vault_system


def get_owner_id(x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id")) -> str:
    """Authenticated owner id, supplied by the fronting auth layer"""
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    return x_owner_id.strip()
