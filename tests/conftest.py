import hashlib
import itertools
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from botocore.exceptions import ClientError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from infra_provisioner.desired_state import DesiredState
from infra_provisioner.provider_interface import IEc2Client
from infra_provisioner.types import (GatewayInfo, ImageInfo, IngressRule, InstanceInfo, KeyPairInfo, RouteTableInfo,
                                     SecurityGroupInfo, SubnetInfo, VpcInfo)

MUTATING_CALLS = {
    "import_keypair", "delete_keypair",
    "create_vpc", "delete_vpc",
    "create_subnet", "delete_subnet",
    "create_internet_gateway", "delete_internet_gateway",
    "create_route_table", "create_route", "delete_route_table",
    "associate_route_table", "disassociate_route_table",
    "create_security_group", "authorize_ingress", "revoke_ingress", "delete_security_group",
    "create_instance", "start_instance", "delete_instance",
}


def _md5_fingerprint(public_key: str) -> str:
    key = serialization.load_ssh_public_key(public_key.encode())
    der = key.public_bytes(encoding=serialization.Encoding.DER,
                           format=serialization.PublicFormat.SubjectPublicKeyInfo)
    digest = hashlib.md5(der).hexdigest()
    return ':'.join(digest[i:i+2] for i in range(0, len(digest), 2))


class FakeEc2Client(IEc2Client):
    """In-memory EC2 region."""

    def __init__(self, region_id: str = "us-east-1"):
        self.region_id = region_id
        self._ids = itertools.count(1)
        self._ips = itertools.count(10)
        self.calls: List[str] = []
        # method name -> exception raised on the next call
        self.fail_on: Dict[str, Exception] = {}

        self.keypairs: Dict[str, KeyPairInfo] = {}
        self.vpcs: Dict[str, dict] = {}
        self.subnets: Dict[str, dict] = {}
        self.gateways: Dict[str, dict] = {}
        self.route_tables: Dict[str, dict] = {}
        self.security_groups: Dict[str, dict] = {}
        self.instances: Dict[str, dict] = {}

    def _call(self, name: str):
        if name in self.fail_on:
            raise self.fail_on.pop(name)
        self.calls.append(name)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):04d}"

    @property
    def mutations(self) -> List[str]:
        return [c for c in self.calls if c in MUTATING_CALLS]

    def live_instances(self) -> List[dict]:
        return [i for i in self.instances.values() if i["state"] != "terminated"]

    def get_zone_ids(self) -> List[str]:
        return ["use1-az1", "use1-az2"]

    def find_image(self, image_name: str, owner: str) -> Optional[ImageInfo]:
        return ImageInfo(image_id="ami-1111", image_name=image_name, creation_date="2026-01-01T00:00:00.000Z")

    def get_keypair(self, key_pair_name: str) -> Optional[KeyPairInfo]:
        return self.keypairs.get(key_pair_name)

    def import_keypair(self, key_pair_name: str, public_key: str, tags: Dict[str, str]):
        self._call("import_keypair")
        self.keypairs[key_pair_name] = KeyPairInfo(key_pair_name, _md5_fingerprint(public_key), dict(tags))

    def delete_keypair(self, key_pair_name: str):
        self._call("delete_keypair")
        del self.keypairs[key_pair_name]

    def find_vpc(self, vpc_name: str) -> Optional[VpcInfo]:
        for vpc_id, vpc in self.vpcs.items():
            if vpc["tags"]["Name"] == vpc_name:
                return VpcInfo(vpc_id, vpc_name, vpc["cidr"], "available")
        return None

    def create_vpc(self, cidr_block: str, tags: Dict[str, str]) -> str:
        self._call("create_vpc")
        vpc_id = self._new_id("vpc")
        self.vpcs[vpc_id] = {"cidr": cidr_block, "tags": dict(tags)}
        return vpc_id

    def delete_vpc(self, vpc_id: str):
        self._call("delete_vpc")
        assert not any(s["vpc"] == vpc_id for s in self.subnets.values()), "vpc has dependencies"
        assert not any(vpc_id in g["attached"] for g in self.gateways.values()), "vpc has an attached gateway"
        del self.vpcs[vpc_id]

    def find_subnet(self, vpc_id: str, subnet_name: str) -> Optional[SubnetInfo]:
        for subnet_id, subnet in self.subnets.items():
            if subnet["vpc"] == vpc_id and subnet["tags"]["Name"] == subnet_name:
                return SubnetInfo(subnet_id, subnet_name, subnet["zone"], subnet["cidr"], "available")
        return None

    def create_subnet(self, vpc_id: str, zone_id: str, cidr_block: str, map_public_ip: bool, tags: Dict[str, str]) -> str:
        self._call("create_subnet")
        assert vpc_id in self.vpcs
        subnet_id = self._new_id("subnet")
        self.subnets[subnet_id] = {"vpc": vpc_id, "zone": zone_id, "cidr": cidr_block, "tags": dict(tags)}
        return subnet_id

    def delete_subnet(self, subnet_id: str):
        self._call("delete_subnet")
        assert not any(i["subnet_id"] == subnet_id for i in self.live_instances()), "subnet has instances"
        del self.subnets[subnet_id]

    def find_internet_gateway(self, vpc_id: str, gateway_name: str) -> Optional[GatewayInfo]:
        for gateway_id, gateway in self.gateways.items():
            if vpc_id in gateway["attached"] and gateway["tags"]["Name"] == gateway_name:
                return GatewayInfo(gateway_id, gateway_name, list(gateway["attached"]))
        return None

    def create_internet_gateway(self, vpc_id: str, tags: Dict[str, str]) -> str:
        self._call("create_internet_gateway")
        gateway_id = self._new_id("igw")
        self.gateways[gateway_id] = {"attached": [vpc_id], "tags": dict(tags)}
        return gateway_id

    def delete_internet_gateway(self, gateway_id: str, vpc_id: str):
        self._call("delete_internet_gateway")
        del self.gateways[gateway_id]

    def find_route_table(self, vpc_id: str, route_table_name: str) -> Optional[RouteTableInfo]:
        for route_table_id, table in self.route_tables.items():
            if table["vpc"] == vpc_id and table["tags"]["Name"] == route_table_name:
                return RouteTableInfo(route_table_id, route_table_name, dict(table["routes"]), dict(table["associations"]))
        return None

    def create_route_table(self, vpc_id: str, tags: Dict[str, str]) -> str:
        self._call("create_route_table")
        route_table_id = self._new_id("rtb")
        self.route_tables[route_table_id] = {"vpc": vpc_id, "routes": {}, "associations": {}, "tags": dict(tags)}
        return route_table_id

    def create_route(self, route_table_id: str, destination_cidr: str, gateway_id: str):
        self._call("create_route")
        assert gateway_id in self.gateways
        self.route_tables[route_table_id]["routes"][destination_cidr] = gateway_id

    def delete_route_table(self, route_table_id: str):
        self._call("delete_route_table")
        assert not self.route_tables[route_table_id]["associations"], "route table still associated"
        del self.route_tables[route_table_id]

    def associate_route_table(self, route_table_id: str, subnet_id: str) -> str:
        self._call("associate_route_table")
        association_id = self._new_id("rtbassoc")
        self.route_tables[route_table_id]["associations"][subnet_id] = association_id
        return association_id

    def disassociate_route_table(self, association_id: str):
        self._call("disassociate_route_table")
        for table in self.route_tables.values():
            for subnet_id, assoc in list(table["associations"].items()):
                if assoc == association_id:
                    del table["associations"][subnet_id]

    def find_security_group(self, vpc_id: str, security_group_name: str) -> Optional[SecurityGroupInfo]:
        for group_id, group in self.security_groups.items():
            if group["vpc"] == vpc_id and group["name"] == security_group_name:
                return SecurityGroupInfo(group_id, security_group_name, frozenset(group["ingress"]))
        return None

    def create_security_group(self, vpc_id: str, security_group_name: str, description: str, tags: Dict[str, str]) -> str:
        self._call("create_security_group")
        group_id = self._new_id("sg")
        self.security_groups[group_id] = {"vpc": vpc_id, "name": security_group_name, "ingress": set(), "tags": dict(tags)}
        return group_id

    def authorize_ingress(self, security_group_id: str, rules: List[IngressRule]):
        if not rules:
            return
        self._call("authorize_ingress")
        self.security_groups[security_group_id]["ingress"].update(rules)

    def revoke_ingress(self, security_group_id: str, rules: List[IngressRule]):
        if not rules:
            return
        self._call("revoke_ingress")
        self.security_groups[security_group_id]["ingress"].difference_update(rules)

    def delete_security_group(self, security_group_id: str):
        self._call("delete_security_group")
        assert not any(i["security_group_id"] == security_group_id for i in self.live_instances()), "group in use"
        del self.security_groups[security_group_id]

    def _info(self, instance_id: str) -> InstanceInfo:
        inst = self.instances[instance_id]
        return InstanceInfo(instance_id=instance_id, instance_name=inst["tags"]["Name"], state=inst["state"],
                            image_id=inst["image_id"], instance_type=inst["instance_type"], subnet_id=inst["subnet_id"],
                            public_ip=inst["public_ip"], private_ip=inst["private_ip"])

    def find_instance(self, instance_name: str) -> Optional[InstanceInfo]:
        for instance_id, inst in self.instances.items():
            if inst["state"] != "terminated" and inst["tags"]["Name"] == instance_name:
                return self._info(instance_id)
        return None

    def describe_instance(self, instance_id: str) -> Optional[InstanceInfo]:
        if instance_id not in self.instances:
            return None
        return self._info(instance_id)

    def create_instance(self, *, image_id: str, instance_type: str, key_name: str, subnet_id: str,
                        security_group_id: str, disk_size: int, user_data: str, tags: Dict[str, str]) -> str:
        self._call("create_instance")
        assert key_name in self.keypairs
        assert subnet_id in self.subnets
        assert security_group_id in self.security_groups
        instance_id = self._new_id("i")
        n = next(self._ips)
        self.instances[instance_id] = {
            "state": "running",
            "image_id": image_id,
            "instance_type": instance_type,
            "subnet_id": subnet_id,
            "security_group_id": security_group_id,
            "public_ip": f"54.0.0.{n}",
            "private_ip": f"10.0.1.{n}",
            "user_data": user_data,
            "tags": dict(tags),
        }
        return instance_id

    def start_instance(self, instance_id: str):
        self._call("start_instance")
        self.instances[instance_id]["state"] = "running"

    def delete_instance(self, instance_id: str):
        self._call("delete_instance")
        self.instances[instance_id]["state"] = "terminated"


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} (simulated)"}}, operation)


@pytest.fixture
def ssh_key(tmp_path: Path) -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    path = tmp_path / "id_rsa"
    path.write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    return str(path)


@pytest.fixture
def desired_state(ssh_key: str) -> DesiredState:
    return DesiredState(
        deployment_id="nexus-test",
        region="us-east-1",
        network={"vpc_cidr": "10.0.0.0/16", "subnet_cidr": "10.0.1.0/24"},
        instance={"image_id": "ami-1111", "key_name": "nexus-key", "ssh_key_path": ssh_key},
    )


@pytest.fixture
def ec2() -> FakeEc2Client:
    return FakeEc2Client()
