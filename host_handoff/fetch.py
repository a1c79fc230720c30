import asyncio
import shlex
import time

from loguru import logger

from .artifact import HandoffArtifact
from .errors import HandoffMissingError, StaleHandoffError
from .host_record import HostRecord, parse_host_record


async def fetch_host_record(session, artifact: HandoffArtifact, *, timeout: float = 300, retry_interval: float = 5) -> HostRecord:
    """Read the record the host wrote at first boot and confirm it matches ``artifact``.

    ``session`` is an open remote session exposing ``async run(command, timeout=...)``.
    The boot script runs asynchronously to provisioning, so a missing record
    is polled until ``timeout``.
    """
    command = f"cat {shlex.quote(artifact.record_path)}"
    deadline = time.time() + timeout
    while True:
        res = await session.run(command, timeout=30)
        if res.success and res.stdout.strip():
            records = parse_host_record(res.stdout)
            break
        if time.time() + retry_interval > deadline:
            raise HandoffMissingError(f"Host record {artifact.record_path} did not appear on {artifact.public_ip} "
                                      f"within {timeout}s: {res.stderr.strip()}")
        logger.debug(f"Host record {artifact.record_path} not yet written on {artifact.public_ip}, retry in {retry_interval}s")
        await asyncio.sleep(retry_interval)

    for record in records:
        if record.address == artifact.public_ip:
            if record.login_account != artifact.ssh_user:
                raise StaleHandoffError(f"Host record on {artifact.public_ip} names login account {record.login_account}, "
                                        f"hand-off expects {artifact.ssh_user}")
            logger.info(f"Host record confirmed: {record.to_line()}")
            return record

    addresses = [record.address for record in records]
    raise StaleHandoffError(f"Host record on {artifact.public_ip} lists {addresses}, the hand-off is stale")
