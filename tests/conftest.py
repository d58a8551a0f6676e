"""Pytest configuration and fixtures for dsMobileToLocal tests."""

from __future__ import annotations

import argparse
import logging
import plistlib
from pathlib import Path

import pytest

import dsMobileToLocal

NATIVE_ATTRIBUTES = {"cached_groups", "cached_auth_policy", "AltSecurityIdentities", "MCXSettings", "MCXFlags"}

KERBEROS_AUTHORITY = ";Kerberosv5;;alice@CORP.EXAMPLE.COM;CORP.EXAMPLE.COM;"
CACHED_AUTHORITY = ";LocalCachedUser;/Active Directory/CORP/All Domains:alice;"
SHADOWHASH_AUTHORITY = ";ShadowHash;HASHLIST:<SALTED-SHA512-PBKDF2,SRP-RFC5054-4096-SHA512-PBKDF2>"


def to_plist(record: dict) -> str:
    """Render a record the way dscl -plist prints it."""
    plist = {}
    for name, values in record.items():
        prefix = "dsAttrTypeNative:" if name in NATIVE_ATTRIBUTES else "dsAttrTypeStandard:"
        plist[prefix + name] = list(values)
    return plistlib.dumps(plist).decode("utf-8")


class FakeDirectory:
    """Stand-in for the macOS directory service command line tools."""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, list[str]]] = {}
        self.groups: dict[str, set[str]] = {"staff": set(), "admin": set(), "everyone": set()}
        self.search_path = ["/Local/Default"]
        self.filevault_users: list[str] = []
        self.commands: list[list[str]] = []
        self.failing: list[str] = []
        self.daemon_running = True
        self.daemon_relaunches = True
        self.restarts = 0
        self.chowned: list[tuple[str, str]] = []
        self.bound = False

    def add_user(self, username, uid="501", home=None, primary_group_id="20", groups=(), attributes=None):
        record = {
            "RecordName": [username],
            "UniqueID": [uid],
            "PrimaryGroupID": [primary_group_id],
            "NFSHomeDirectory": [str(home) if home else "/Users/" + username],
            "AuthenticationAuthority": [SHADOWHASH_AUTHORITY],
        }
        record.update(attributes or {})
        self.users[username] = record
        for group in groups:
            self.groups.setdefault(group, set()).add(username)
        return record

    def bind(self, node="/Active Directory/CORP/All Domains"):
        self.bound = True
        self.search_path.append(node)

    def user_groups(self, username) -> list[str]:
        return sorted(group for group, members in self.groups.items() if username in members)

    def ran(self, *prefix) -> bool:
        return any(command[: len(prefix)] == list(prefix) for command in self.commands)

    def execute(self, command):
        self.commands.append(list(command))
        if any(" ".join(command).startswith(failing) for failing in self.failing):
            return None
        tool = command[0]
        handler = getattr(self, "_" + tool.rpartition("/")[2], None)
        if handler is None:
            raise AssertionError("Unexpected command: %s" % command)
        return handler(command[1:])

    def succeeds(self, command) -> bool:
        return self.execute(command) is not None

    def _dscl(self, args):
        if not self.daemon_running:
            return None
        plist = args[0] == "-plist"
        if plist:
            args = args[1:]
        node, action, path = args[0], args[1], args[2]
        rest = args[3:]
        if node.startswith("/Search"):
            return self._search(action, rest)
        if action == "-list":
            return "\n".join(sorted(self.users)) + "\n"
        username = path.rpartition("/")[2]
        record = self.users.get(username)
        if record is None:
            return None
        if action == "-read":
            if not rest:
                return to_plist(record)
            if rest[0] not in record:
                return None
            return to_plist({rest[0]: record[rest[0]]})
        if action == "-delete":
            attribute = rest[0]
            if attribute not in record:
                return None
            if len(rest) > 1:
                if rest[1] not in record[attribute]:
                    return None
                record[attribute].remove(rest[1])
            else:
                del record[attribute]
            return ""
        if action == "-create":
            record[rest[0]] = [rest[1]]
            return ""
        raise AssertionError("Unexpected dscl action: %s" % action)

    def _search(self, action, rest):
        if action == "-read":
            return to_plist({"CSPSearchPath": self.search_path})
        if action == "-delete":
            if rest[1] in self.search_path:
                self.search_path.remove(rest[1])
            return ""
        return ""

    def _dseditgroup(self, args):
        if args[1] == "checkmember":
            username, group = args[3], args[4]
            return "yes" if username in self.groups.get(group, set()) else None
        operation, username, group = args[2], args[3], args[6]
        if username not in self.users:
            return None
        if operation == "-a":
            self.groups.setdefault(group, set()).add(username)
        else:
            self.groups.get(group, set()).discard(username)
        return ""

    def _id(self, args):
        username = args[-1]
        if username not in self.users:
            return None
        groups = self.user_groups(username)
        if args[0] == "-Gn":
            return " ".join(groups) + "\n"
        return "uid=%s(%s) groups=%s\n" % (self.users[username]["UniqueID"][0], username, ",".join(groups))

    def _pgrep(self, args):
        if not self.daemon_running and self.daemon_relaunches:
            # launchd brings the daemon back after the first poll
            self.daemon_running = True
            return None
        return "123\n" if self.daemon_running else None

    def _killall(self, args):
        self.restarts += 1
        self.daemon_running = False
        return ""

    def _chown(self, args):
        self.chowned.append((args[1], args[2]))
        return ""

    def _ls(self, args):
        return "total 0\ndrwx------+ 4 alice staff 128 Desktop\n 0: group:everyone deny delete\n"

    def _dsconfigad(self, args):
        self.bound = False
        return ""

    def _dscacheutil(self, args):
        return ""

    def _fdesetup(self, args):
        if args[0] == "status":
            return "FileVault is On.\n" if self.filevault_users else "FileVault is Off.\n"
        return "".join("%s,00000000-0000-0000-0000-000000000000\n" % user for user in self.filevault_users)

    def _which(self, args):
        return None


@pytest.fixture
def directory(monkeypatch) -> FakeDirectory:
    """Replace every OS command with the fake directory service."""
    fake = FakeDirectory()
    monkeypatch.setattr(dsMobileToLocal, "execute_command", fake.execute)
    monkeypatch.setattr(dsMobileToLocal, "command_succeeds", fake.succeeds)
    monkeypatch.setattr(dsMobileToLocal.time, "sleep", lambda seconds: None)
    return fake


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    """Return the backup root for permission snapshots."""
    return tmp_path / "user_backups"


@pytest.fixture
def make_args(backup_dir: Path):
    """Build the argument namespace convert_user expects."""

    def _make_args(admin_policy: str = "preserve", timeout: int = 10) -> argparse.Namespace:
        return argparse.Namespace(admin_policy=admin_policy, backup=str(backup_dir), timeout=timeout)

    return _make_args


@pytest.fixture
def ad_user(directory: FakeDirectory, tmp_path: Path) -> dict:
    """An AD mobile account with admin rights and a mix of local and AD groups."""
    home = tmp_path / "Users" / "alice"
    (home / "Desktop").mkdir(parents=True)
    return directory.add_user(
        "alice",
        uid="1104",
        home=home,
        primary_group_id="1896053708",
        groups=("staff", "admin", "SALES\\users", "engineering"),
        attributes={
            "AuthenticationAuthority": [KERBEROS_AUTHORITY, CACHED_AUTHORITY, SHADOWHASH_AUTHORITY],
            "SMBSID": ["S-1-5-21-1234-5678-9012-1104"],
            "SMBPrimaryGroupSID": ["S-1-5-21-1234-5678-9012-513"],
            "SMBScriptPath": ["logon.bat"],
            "SMBPasswordLastSet": ["133430000000000000"],
            "SMBGroupRID": ["513"],
            "PrimaryNTDomain": ["CORP"],
            "OriginalAuthenticationAuthority": [KERBEROS_AUTHORITY],
            "OriginalNodeName": ["/Active Directory/CORP/corp.example.com"],
            "AppleMetaRecordName": ["CN=alice,OU=Staff,DC=corp,DC=example,DC=com"],
            "cached_groups": ["<plist/>"],
            "cached_auth_policy": ["<plist/>"],
            "CopyTimestamp": ["2025-01-01T00:00:00Z"],
            "AltSecurityIdentities": ["Kerberos:alice@CORP.EXAMPLE.COM"],
            "MCXSettings": ["<plist/>"],
            "MCXFlags": ["<plist/>"],
        },
    )


@pytest.fixture
def local_user(directory: FakeDirectory, tmp_path: Path) -> dict:
    """A plain local account."""
    home = tmp_path / "Users" / "bob"
    home.mkdir(parents=True)
    return directory.add_user("bob", uid="502", home=home, groups=("staff", "admin", "developers"))


@pytest.fixture(autouse=True)
def restore_logging():
    """Drop log handlers added by parse_arguments during a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
