"""
Owner Profile Module

Owner profiles hold what the ledger needs to know about a person: display
name, public id used by other owners to address transfers, email and
pension target year. Also resolves a transfer recipient from a public id
or email.
"""

import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .calculator import validate_retirement_year
from .config import VaultLedgerConfig, get_config
from .errors import NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord, parse_datetime


EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PUBLIC_ID_MIN = 100000
PUBLIC_ID_MAX = 999999


@dataclass
class Profile(StorageRecord):
    """Owner identity as seen by the ledger"""
    display_name: str
    email: str
    public_id: str
    pension_target_year: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.display_name, str) or not self.display_name.strip():
            raise ValidationError("Display name is required")

    @property
    def email_normalized(self) -> str:
        return self.email.strip().lower()


def profile_to_dict(profile: Profile) -> Dict[str, Any]:
    """Convert Profile to dictionary for storage"""
    return {
        'id': profile.id,
        'created_at': profile.created_at.isoformat(),
        'updated_at': profile.updated_at.isoformat(),
        'display_name': profile.display_name,
        'email': profile.email,
        'email_normalized': profile.email_normalized,
        'public_id': profile.public_id,
        'pension_target_year': profile.pension_target_year,
    }


def profile_from_dict(data: Dict[str, Any]) -> Profile:
    """Convert dictionary to Profile"""
    return Profile(
        id=data['id'],
        created_at=parse_datetime(data['created_at']),
        updated_at=parse_datetime(data['updated_at']),
        display_name=data['display_name'],
        email=data['email'],
        public_id=data['public_id'],
        pension_target_year=data.get('pension_target_year'),
    )


def validate_email(email: Any) -> str:
    """Return the lower-cased email or raise ValidationError"""
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
        raise ValidationError("Please enter a valid email address")
    return email.strip().lower()


def validate_public_id(public_id: Union[int, str]) -> str:
    """Return the public id as its 6-digit string or raise ValidationError"""
    if isinstance(public_id, bool):
        raise ValidationError("Please enter a valid 6-digit User ID")
    text = str(public_id).strip()
    if not (text.isascii() and text.isdigit()) or not PUBLIC_ID_MIN <= int(text) <= PUBLIC_ID_MAX:
        raise ValidationError("Please enter a valid 6-digit User ID")
    return text


def validate_recipient_identifier(
    public_id: Optional[Union[int, str]] = None,
    email: Optional[str] = None
) -> Tuple[str, str]:
    """
    Check that exactly one recipient identifier was supplied

    Returns:
        ("public_id", value) or ("email", normalized email)

    Raises:
        ValidationError: If both or neither are given, or the value is malformed
    """
    has_public_id = public_id is not None and str(public_id).strip() != ""
    has_email = email is not None and str(email).strip() != ""

    if has_public_id and has_email:
        raise ValidationError("Provide either a User ID or an email address, not both")
    if not has_public_id and not has_email:
        raise ValidationError("Provide a recipient User ID or email address")

    if has_public_id:
        return "public_id", validate_public_id(public_id)
    return "email", validate_email(email)


class ProfileStore:
    """Creates, reads and updates owner profiles"""

    def __init__(
        self,
        storage: StorageInterface,
        config: Optional[VaultLedgerConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.storage = storage
        self.config = config or get_config()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.table_name = "profiles"
        self.logger = get_logger("vault_ledger.profiles")

    def create_profile(
        self,
        display_name: str,
        email: str,
        public_id: Optional[Union[int, str]] = None
    ) -> Profile:
        """
        Register a new owner profile

        Args:
            display_name: Name shown to other owners
            email: Contact email, unique across profiles
            public_id: Explicit 6-digit id (generated when omitted)

        Returns:
            Created Profile
        """
        normalized = validate_email(email)
        if self.find_by_email(normalized):
            raise ValidationError("An account with this email already exists")

        if public_id is None:
            public_id = self._generate_public_id()
        else:
            public_id = validate_public_id(public_id)
            if self.find_by_public_id(public_id):
                raise ValidationError(f"User ID {public_id} is already taken")

        now = self.clock()
        profile = Profile(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            display_name=display_name.strip() if isinstance(display_name, str) else display_name,
            email=email.strip(),
            public_id=public_id,
        )
        self._save_profile(profile)

        log_action(
            self.logger, "info", "Profile created",
            owner_id=profile.id, action="create_profile", resource="profile",
            extra={"public_id": profile.public_id}
        )
        return profile

    def get_profile(self, owner_id: str) -> Profile:
        data = self.storage.load(self.table_name, owner_id)
        if not data:
            raise NotFoundError("Profile not found")
        return profile_from_dict(data)

    def set_pension_target_year(self, owner_id: str, year: Union[int, str]) -> Profile:
        """
        Set or change the owner's retirement target year

        Raises:
            ValidationError: If the year is outside the allowed window
            NotFoundError: If the profile does not exist
        """
        now = self.clock()
        year_num = validate_retirement_year(
            year, now,
            self.config.retirement_min_years_ahead,
            self.config.retirement_max_years_ahead
        )

        with self.storage.atomic():
            profile = self.get_profile(owner_id)
            profile.pension_target_year = year_num
            profile.updated_at = now
            self._save_profile(profile)

        log_action(
            self.logger, "info", "Pension target year set",
            owner_id=owner_id, action="set_pension_target_year", resource="profile",
            extra={"pension_target_year": year_num}
        )
        return profile

    def find_by_public_id(self, public_id: Union[int, str]) -> List[Profile]:
        rows = self.storage.find(self.table_name, {'public_id': str(public_id)})
        return [profile_from_dict(row) for row in rows]

    def find_by_email(self, email: str) -> List[Profile]:
        rows = self.storage.find(self.table_name, {'email_normalized': email.strip().lower()})
        return [profile_from_dict(row) for row in rows]

    def resolve_recipient(
        self,
        public_id: Optional[Union[int, str]] = None,
        email: Optional[str] = None
    ) -> Profile:
        """
        Find the single owner addressed by a public id or email

        Raises:
            ValidationError: If the identifiers are malformed
            NotFoundError: If zero or several owners match
        """
        kind, value = validate_recipient_identifier(public_id, email)
        if kind == "public_id":
            matches = self.find_by_public_id(value)
        else:
            matches = self.find_by_email(value)

        if len(matches) != 1:
            log_action(
                self.logger, "warning", "Recipient lookup failed",
                action="resolve_recipient", resource="profile",
                extra={"identifier": kind, "matches": len(matches)}
            )
            raise NotFoundError("Recipient not found")
        return matches[0]

    def delete_profile(self, owner_id: str) -> bool:
        return self.storage.delete(self.table_name, owner_id)

    def _generate_public_id(self) -> str:
        while True:
            candidate = str(PUBLIC_ID_MIN + secrets.randbelow(PUBLIC_ID_MAX - PUBLIC_ID_MIN + 1))
            if not self.find_by_public_id(candidate):
                return candidate

    def _save_profile(self, profile: Profile) -> None:
        self.storage.save(self.table_name, profile.id, profile_to_dict(profile))
