"""Ownership and access interpretation."""
import logging
from typing import List, Optional, Union

from schemadx.models.finding import AccessProfile, AccessReport, ImpactSeverity, PrivilegeCheck
from schemadx.models.metadata import TableMetadata

logger = logging.getLogger(__name__)

CHECKED_PRIVILEGES = ['SELECT', 'INSERT', 'UPDATE', 'DELETE']
WRITE_PRIVILEGES = ['INSERT', 'UPDATE', 'DELETE']

def _expected(privilege: str, profile: AccessProfile) -> bool:
    if profile == AccessProfile.READ_ONLY:
        return privilege == 'SELECT'
    return True

def _interpretation(owner: str, current_user: str, ownership_ok: bool,
                    has_select: bool, has_write: bool) -> List[str]:
    """Compose the narrative from the three booleans only."""
    if ownership_ok:
        sentences = [f"This table is owned by {owner} (you). You have full control."]
    else:
        sentences = [f"This table is owned by {owner}."]

    read = "read data" if has_select else "NOT read data"
    write = " and can modify it." if has_write else " but cannot modify it."
    sentences.append(f"The connected user {current_user} can {read}{write}")

    if not has_write:
        sentences.append(
            "This is acceptable for read-only services but will fail for write paths."
        )
    return sentences

def interpret_access(
    meta: TableMetadata,
    expected_profile: Union[AccessProfile, str] = AccessProfile.READ_WRITE
) -> Optional[AccessReport]:
    """Compare granted privileges and ownership against an expected profile.

    Profiles:
    - read-only: SELECT is expected; missing write privileges are not mismatches.
    - read-write: SELECT, INSERT, UPDATE and DELETE are all expected.
    - admin: all four are expected and the connected user must own the table.

    Ownership is not a privilege row. Under admin a non-owner with all four
    privileges gets no row with ``is_mismatch`` set, so ``mismatch_count`` is 0;
    the failure shows only in ``ownership_mismatch`` and ``has_mismatch``.

    Returns:
        AccessReport, or None when no privilege check was captured.
    """
    if meta.privileges is None:
        logger.debug("No privileges captured for %s; skipping access interpretation",
                     meta.qualified_name)
        return None

    profile = AccessProfile(expected_profile)
    privileges = meta.privileges

    ownership_ok = meta.owner == meta.current_user
    has_select = privileges.has('SELECT')
    has_write = any(privileges.has(p) for p in WRITE_PRIVILEGES)

    checks = []
    for privilege in CHECKED_PRIVILEGES:
        has_priv = privileges.has(privilege)
        expected = _expected(privilege, profile)
        checks.append(PrivilegeCheck(
            privilege=privilege,
            has_priv=has_priv,
            expected=expected,
            is_mismatch=expected and not has_priv
        ))

    ownership_mismatch = profile == AccessProfile.ADMIN and not ownership_ok
    status = (
        ImpactSeverity.SUCCESS if ownership_ok and has_select and has_write
        else ImpactSeverity.WARNING
    )

    return AccessReport(
        profile=profile,
        owner=meta.owner,
        current_user=meta.current_user,
        ownership_ok=ownership_ok,
        has_select_access=has_select,
        has_write_access=has_write,
        checks=checks,
        ownership_mismatch=ownership_mismatch,
        interpretation=_interpretation(
            meta.owner, meta.current_user, ownership_ok, has_select, has_write
        ),
        status=status
    )
