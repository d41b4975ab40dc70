import logging
import threading

from core.constants import ADMIN_ROLE, ROLE_NAMES
from core.errors import InvalidInput, MissingRole
from services.events import EventLog
from utils.atomic import Checkpointable, critical_section
from utils.web3_utils import derive_address, require_address, to_address

logger = logging.getLogger(__name__)


class AccessManager(Checkpointable):
    """Flat (role, account) membership. Admin administers every role, itself included."""

    _checkpoint_attrs = ("_roles",)

    def __init__(self, admin: str, *, name: str = "AccessManager"):
        self.name = name
        self.address = derive_address(f"access-manager:{name}")
        self.lock = threading.RLock()
        self.events = EventLog(name, logger)
        self._roles: dict[str, set[str]] = {}
        admin = require_address(admin)
        self._grant(ADMIN_ROLE, admin, sender=admin)

    def participants(self):
        return (self, self.events)

    def has_role(self, role: str, account: str) -> bool:
        try:
            account = to_address(account)
        except InvalidInput:
            return False
        return account in self._roles.get(role, set())

    def check_role(self, role: str, account: str) -> None:
        if not self.has_role(role, account):
            raise MissingRole(ROLE_NAMES.get(role, role), str(account))

    def members(self, role: str) -> list[str]:
        return sorted(self._roles.get(role, set()))

    @critical_section
    def grant_role(self, role: str, account: str, *, caller: str) -> None:
        self.check_role(ADMIN_ROLE, caller)
        self._grant(role, require_address(account), sender=to_address(caller))

    @critical_section
    def revoke_role(self, role: str, account: str, *, caller: str) -> None:
        self.check_role(ADMIN_ROLE, caller)
        self._revoke(role, require_address(account), sender=to_address(caller))

    def _grant(self, role: str, account: str, *, sender: str) -> None:
        members = self._roles.setdefault(role, set())
        if account in members:
            return
        members.add(account)
        self.events.emit("RoleGranted", role=role, account=account, sender=sender)

    def _revoke(self, role: str, account: str, *, sender: str) -> None:
        members = self._roles.get(role, set())
        if account not in members:
            return
        members.remove(account)
        self.events.emit("RoleRevoked", role=role, account=account, sender=sender)
