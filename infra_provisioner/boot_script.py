"""Boot-time initialization script for the Nexus host.

On first boot the host writes its own Host Record
(``<public-ip> <login-account-key>=<login-account>``) to a well-known path.
The record is never rewritten on later boots; a replaced host gets a fresh
record because it boots from scratch.
"""
import shlex
from typing import Sequence

IMDS_ENDPOINT = "http://169.254.169.254/latest"


def render_boot_script(*, ssh_user: str, login_account_key: str, record_path: str,
                       boot_commands: Sequence[str] = ()) -> str:
    record_path_q = shlex.quote(record_path)
    lines = [
        "#!/bin/bash",
        "set -euo pipefail",
        f"RECORD_PATH={record_path_q}",
        'if [ -s "$RECORD_PATH" ]; then exit 0; fi',
        f'TOKEN=$(curl -sS -X PUT "{IMDS_ENDPOINT}/api/token" -H "X-aws-ec2-metadata-token-ttl-seconds: 300")',
        'PUBLIC_IP=""',
        "for i in $(seq 1 60); do",
        f'  PUBLIC_IP=$(curl -sS -f -H "X-aws-ec2-metadata-token: $TOKEN" {IMDS_ENDPOINT}/meta-data/public-ipv4 || true)',
        '  if [ -n "$PUBLIC_IP" ]; then break; fi',
        "  sleep 2",
        "done",
        'if [ -z "$PUBLIC_IP" ]; then echo "no public ipv4 in instance metadata" >&2; exit 1; fi',
        'mkdir -p "$(dirname "$RECORD_PATH")"',
        f'echo "$PUBLIC_IP" {shlex.quote(f"{login_account_key}={ssh_user}")} > "$RECORD_PATH.tmp"',
        'chmod 0644 "$RECORD_PATH.tmp"',
        'mv "$RECORD_PATH.tmp" "$RECORD_PATH"',
    ]
    lines.extend(boot_commands)
    return "\n".join(lines) + "\n"
