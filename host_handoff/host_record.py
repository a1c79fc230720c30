"""Host Record: ``<ip-address> <login-account-key>=<value>``, one line per host."""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Iterable, List

from .errors import HostRecordFormatError

DEFAULT_LOGIN_ACCOUNT_KEY = "ansible_user"


@dataclass(frozen=True)
class HostRecord:
    address: str
    login_account: str
    login_account_key: str = DEFAULT_LOGIN_ACCOUNT_KEY

    def to_line(self) -> str:
        return f"{self.address} {self.login_account_key}={self.login_account}"


def _parse_line(line: str, lineno: int) -> HostRecord:
    parts = line.split()
    if len(parts) != 2 or "=" not in parts[1]:
        raise HostRecordFormatError(f"line {lineno}: expected '<ip-address> <key>=<value>', got {line!r}")

    address, assignment = parts
    try:
        ipaddress.ip_address(address)
    except ValueError:
        raise HostRecordFormatError(f"line {lineno}: {address!r} is not an ip address")

    key, value = assignment.split("=", 1)
    if not key or not value:
        raise HostRecordFormatError(f"line {lineno}: empty login account in {line!r}")
    return HostRecord(address=address, login_account=value, login_account_key=key)


def parse_host_record(text: str) -> List[HostRecord]:
    records = []
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        records.append(_parse_line(line, lineno))
    return records


def format_host_records(records: Iterable[HostRecord]) -> str:
    return "".join(record.to_line() + "\n" for record in records)
