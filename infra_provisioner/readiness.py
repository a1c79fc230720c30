import socket

from loguru import logger

from utils.wait_until import WaitUntilTimeoutError, wait_until

from .provider_interface import IEc2Client
from .types import InstanceInfo


def check_port(ip: str, port: int = 22, timeout: int = 5) -> bool:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(timeout)

    try:
        result = sock.connect_ex((ip, port))
        return result == 0
    except (socket.timeout, socket.error):
        return False
    finally:
        sock.close()


def wait_for_running(client: IEc2Client, instance_id: str, *, timeout: int = 300, retry_interval: float = 5) -> InstanceInfo:
    """Wait until the instance is running and has a public address."""
    latest = {}

    def _running():
        info = client.describe_instance(instance_id)
        if info is None:
            return False
        if info.state in ('terminated', 'shutting-down'):
            raise RuntimeError(f"Instance {instance_id} entered state {info.state} while booting")
        latest['info'] = info
        if info.state == 'pending':
            logger.debug(f"Instance {instance_id} pending")
        return info.state == 'running' and bool(info.public_ip)

    wait_until(_running, timeout=timeout, retry_interval=retry_interval)
    info = latest['info']
    logger.success(f"Instance {instance_id} running at {info.public_ip}")
    return info


def wait_for_ssh_port_ready(ip: str, port: int = 22, *, timeout: int = 180, retry_interval: float = 3) -> bool:
    try:
        wait_until(lambda: check_port(ip, port), timeout=timeout, retry_interval=retry_interval)
        return True
    except WaitUntilTimeoutError:
        logger.warning(f"Cannot connect to IP {ip} port {port}")
        return False
