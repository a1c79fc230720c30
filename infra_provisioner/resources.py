"""
Resource handlers

Each handler knows how to look up, diff, create, update and delete one kind
of cloud resource. Handlers declare the resources they reference through
``depends_on``; the build plan orders them from those edges.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from loguru import logger

from .boot_script import render_boot_script
from .crypto import get_fingerprint_from_key, get_public_key_body
from .desired_state import DEFAULT_COMMON_TAG_KEY, DEFAULT_COMMON_TAG_VALUE, DesiredState
from .errors import PlanError
from .provider_interface import IEc2Client
from .types import (Action, GatewayInfo, InstanceInfo, KeyPairInfo, ResourceKind, RouteTableInfo,
                    SecurityGroupInfo, SubnetInfo, VpcInfo)

DEFAULT_ROUTE_CIDR = "0.0.0.0/0"

# resource kind -> resource id, None while the resource is only planned
Refs = Dict[ResourceKind, Optional[str]]


class ResourceHandler(ABC):
    kind: ResourceKind
    depends_on: Tuple[ResourceKind, ...] = ()

    def __init__(self, state: DesiredState):
        self.state = state

    @property
    def name(self) -> str:
        return self.state.resource_name(self.kind.value)

    @property
    def tags(self) -> Dict[str, str]:
        return self.state.tags(self.kind.value)

    @abstractmethod
    def lookup(self, client: IEc2Client, refs: Refs):
        ...

    @abstractmethod
    def resource_id(self, live) -> str:
        ...

    def diff(self, client: IEc2Client, live, refs: Refs) -> Tuple[Action, str]:
        if live is None:
            return Action.CREATE, "absent"
        return Action.NOOP, "up to date"

    @abstractmethod
    def create(self, client: IEc2Client, refs: Refs) -> str:
        ...

    def update(self, client: IEc2Client, live, refs: Refs):
        raise NotImplementedError(f"{self.kind.value} does not support in-place update")

    @abstractmethod
    def delete(self, client: IEc2Client, live, refs: Refs):
        ...


class KeyPairHandler(ResourceHandler):
    kind = ResourceKind.KEY_PAIR

    @property
    def name(self) -> str:
        return self.state.instance.key_name

    def lookup(self, client: IEc2Client, refs: Refs) -> Optional[KeyPairInfo]:
        return client.get_keypair(self.name)

    def resource_id(self, live: KeyPairInfo) -> str:
        return live.key_pair_name

    def diff(self, client: IEc2Client, live: Optional[KeyPairInfo], refs: Refs) -> Tuple[Action, str]:
        key_path = self.state.instance.ssh_key_path
        if live is None:
            if not key_path:
                raise PlanError(f"Key pair {self.name} not found in {self.state.region} and no ssh_key_path to import it from")
            return Action.CREATE, f"import public key from {key_path}"
        if key_path and live.finger_print != get_fingerprint_from_key(key_path):
            raise PlanError(f"Key pair {self.name} has inconsistent finger print with {key_path}")
        return Action.NOOP, "up to date"

    def create(self, client: IEc2Client, refs: Refs) -> str:
        assert self.state.instance.ssh_key_path is not None
        client.import_keypair(self.name, get_public_key_body(self.state.instance.ssh_key_path), self.tags)
        return self.name

    def delete(self, client: IEc2Client, live: KeyPairInfo, refs: Refs):
        if live.tags.get(DEFAULT_COMMON_TAG_KEY) != DEFAULT_COMMON_TAG_VALUE:
            logger.info(f"Key pair {live.key_pair_name} was not imported by us, keep it")
            return
        client.delete_keypair(live.key_pair_name)


class VpcHandler(ResourceHandler):
    kind = ResourceKind.VPC

    def lookup(self, client: IEc2Client, refs: Refs) -> Optional[VpcInfo]:
        return client.find_vpc(self.name)

    def resource_id(self, live: VpcInfo) -> str:
        return live.vpc_id

    def diff(self, client: IEc2Client, live: Optional[VpcInfo], refs: Refs) -> Tuple[Action, str]:
        if live is not None and live.cidr_block != self.state.network.vpc_cidr:
            raise PlanError(
                f"VPC {self.name} has cidr {live.cidr_block}, desired {self.state.network.vpc_cidr}; destroy it first")
        return super().diff(client, live, refs)

    def create(self, client: IEc2Client, refs: Refs) -> str:
        return client.create_vpc(self.state.network.vpc_cidr, self.tags)

    def delete(self, client: IEc2Client, live: VpcInfo, refs: Refs):
        client.delete_vpc(live.vpc_id)


class SubnetHandler(ResourceHandler):
    kind = ResourceKind.SUBNET
    depends_on = (ResourceKind.VPC,)

    def lookup(self, client: IEc2Client, refs: Refs) -> Optional[SubnetInfo]:
        vpc_id = refs[ResourceKind.VPC]
        if vpc_id is None:
            return None
        return client.find_subnet(vpc_id, self.name)

    def resource_id(self, live: SubnetInfo) -> str:
        return live.subnet_id

    def diff(self, client: IEc2Client, live: Optional[SubnetInfo], refs: Refs) -> Tuple[Action, str]:
        if live is not None:
            network = self.state.network
            if live.cidr_block != network.subnet_cidr:
                raise PlanError(f"Subnet {self.name} has cidr {live.cidr_block}, desired {network.subnet_cidr}; destroy it first")
            if network.availability_zone and live.zone_id != network.availability_zone:
                raise PlanError(f"Subnet {self.name} is in {live.zone_id}, desired {network.availability_zone}; destroy it first")
            if live.state != "available":
                raise PlanError(f"Subnet {self.name} has unexpected state: {live.state}")
        return super().diff(client, live, refs)

    def _zone_id(self, client: IEc2Client) -> str:
        if self.state.network.availability_zone:
            return self.state.network.availability_zone
        zone_ids = client.get_zone_ids()
        if not zone_ids:
            raise PlanError(f"No available zone in region {self.state.region}")
        return zone_ids[0]

    def create(self, client: IEc2Client, refs: Refs) -> str:
        vpc_id = refs[ResourceKind.VPC]
        assert vpc_id is not None
        network = self.state.network
        return client.create_subnet(vpc_id, self._zone_id(client), network.subnet_cidr, network.map_public_ip, self.tags)

    def delete(self, client: IEc2Client, live: SubnetInfo, refs: Refs):
        client.delete_subnet(live.subnet_id)


class InternetGatewayHandler(ResourceHandler):
    kind = ResourceKind.INTERNET_GATEWAY
    depends_on = (ResourceKind.VPC,)

    def lookup(self, client: IEc2Client, refs: Refs) -> Optional[GatewayInfo]:
        vpc_id = refs[ResourceKind.VPC]
        if vpc_id is None:
            return None
        return client.find_internet_gateway(vpc_id, self.name)

    def resource_id(self, live: GatewayInfo) -> str:
        return live.gateway_id

    def create(self, client: IEc2Client, refs: Refs) -> str:
        vpc_id = refs[ResourceKind.VPC]
        assert vpc_id is not None
        return client.create_internet_gateway(vpc_id, self.tags)

    def delete(self, client: IEc2Client, live: GatewayInfo, refs: Refs):
        vpc_id = refs[ResourceKind.VPC]
        assert vpc_id is not None
        client.delete_internet_gateway(live.gateway_id, vpc_id)


class RouteTableHandler(ResourceHandler):
    kind = ResourceKind.ROUTE_TABLE
    depends_on = (ResourceKind.VPC, ResourceKind.INTERNET_GATEWAY)

    def lookup(self, client: IEc2Client, refs: Refs) -> Optional[RouteTableInfo]:
        vpc_id = refs[ResourceKind.VPC]
        if vpc_id is None:
            return None
        return client.find_route_table(vpc_id, self.name)

    def resource_id(self, live: RouteTableInfo) -> str:
        return live.route_table_id

    def diff(self, client: IEc2Client, live: Optional[RouteTableInfo], refs: Refs) -> Tuple[Action, str]:
        if live is None:
            return Action.CREATE, "absent"
        gateway_id = refs[ResourceKind.INTERNET_GATEWAY]
        if gateway_id is None or live.routes.get(DEFAULT_ROUTE_CIDR) != gateway_id:
            return Action.UPDATE, f"route {DEFAULT_ROUTE_CIDR} does not point to the internet gateway"
        return Action.NOOP, "up to date"

    def create(self, client: IEc2Client, refs: Refs) -> str:
        vpc_id = refs[ResourceKind.VPC]
        gateway_id = refs[ResourceKind.INTERNET_GATEWAY]
        assert vpc_id is not None and gateway_id is not None
        route_table_id = client.create_route_table(vpc_id, self.tags)
        client.create_route(route_table_id, DEFAULT_ROUTE_CIDR, gateway_id)
        return route_table_id

    def update(self, client: IEc2Client, live: RouteTableInfo, refs: Refs):
        gateway_id = refs[ResourceKind.INTERNET_GATEWAY]
        assert gateway_id is not None
        client.create_route(live.route_table_id, DEFAULT_ROUTE_CIDR, gateway_id)

    def delete(self, client: IEc2Client, live: RouteTableInfo, refs: Refs):
        client.delete_route_table(live.route_table_id)


class RouteTableAssociationHandler(ResourceHandler):
    kind = ResourceKind.ROUTE_TABLE_ASSOCIATION
    depends_on = (ResourceKind.ROUTE_TABLE, ResourceKind.SUBNET)

    def lookup(self, client: IEc2Client, refs: Refs) -> Optional[str]:
        vpc_id = refs.get(ResourceKind.VPC)
        subnet_id = refs[ResourceKind.SUBNET]
        if vpc_id is None or subnet_id is None or refs[ResourceKind.ROUTE_TABLE] is None:
            return None
        route_table = client.find_route_table(vpc_id, self.state.resource_name(ResourceKind.ROUTE_TABLE.value))
        if route_table is None:
            return None
        return route_table.associations.get(subnet_id)

    def resource_id(self, live: str) -> str:
        return live

    def create(self, client: IEc2Client, refs: Refs) -> str:
        route_table_id = refs[ResourceKind.ROUTE_TABLE]
        subnet_id = refs[ResourceKind.SUBNET]
        assert route_table_id is not None and subnet_id is not None
        return client.associate_route_table(route_table_id, subnet_id)

    def delete(self, client: IEc2Client, live: str, refs: Refs):
        client.disassociate_route_table(live)


class SecurityGroupHandler(ResourceHandler):
    kind = ResourceKind.SECURITY_GROUP
    depends_on = (ResourceKind.VPC,)

    def lookup(self, client: IEc2Client, refs: Refs) -> Optional[SecurityGroupInfo]:
        vpc_id = refs[ResourceKind.VPC]
        if vpc_id is None:
            return None
        return client.find_security_group(vpc_id, self.name)

    def resource_id(self, live: SecurityGroupInfo) -> str:
        return live.security_group_id

    def _drift(self, live: SecurityGroupInfo):
        desired = set(self.state.access_policy.rules())
        missing = sorted(desired - live.ingress, key=str)
        extra = sorted(live.ingress - desired, key=str)
        return missing, extra

    def diff(self, client: IEc2Client, live: Optional[SecurityGroupInfo], refs: Refs) -> Tuple[Action, str]:
        if live is None:
            return Action.CREATE, "absent"
        missing, extra = self._drift(live)
        if missing or extra:
            reason = []
            if missing:
                reason.append(f"authorize {', '.join(map(str, missing))}")
            if extra:
                reason.append(f"revoke {', '.join(map(str, extra))}")
            return Action.UPDATE, "; ".join(reason)
        return Action.NOOP, "up to date"

    def create(self, client: IEc2Client, refs: Refs) -> str:
        vpc_id = refs[ResourceKind.VPC]
        assert vpc_id is not None
        security_group_id = client.create_security_group(vpc_id, self.name, self.state.access_policy.description, self.tags)
        client.authorize_ingress(security_group_id, self.state.access_policy.rules())
        return security_group_id

    def update(self, client: IEc2Client, live: SecurityGroupInfo, refs: Refs):
        missing, extra = self._drift(live)
        client.authorize_ingress(live.security_group_id, missing)
        client.revoke_ingress(live.security_group_id, extra)

    def delete(self, client: IEc2Client, live: SecurityGroupInfo, refs: Refs):
        client.delete_security_group(live.security_group_id)


class InstanceHandler(ResourceHandler):
    kind = ResourceKind.INSTANCE
    # the association edge keeps the host from booting before its subnet is routable
    depends_on = (ResourceKind.KEY_PAIR, ResourceKind.SUBNET, ResourceKind.SECURITY_GROUP,
                  ResourceKind.ROUTE_TABLE_ASSOCIATION)

    _image_id: Optional[str] = None

    def image_id(self, client: IEc2Client) -> str:
        if self._image_id is None:
            cfg = self.state.instance
            if cfg.image_id:
                self._image_id = cfg.image_id
            else:
                assert cfg.image_name is not None
                image = client.find_image(cfg.image_name, cfg.image_owner)
                if image is None:
                    raise PlanError(f"Image {cfg.image_name} not found in region {self.state.region}")
                logger.info(f"Get Image {cfg.image_name}: {image.image_id}")
                self._image_id = image.image_id
        return self._image_id

    def user_data(self) -> str:
        cfg = self.state.instance
        return render_boot_script(ssh_user=cfg.ssh_user,
                                  login_account_key=cfg.login_account_key,
                                  record_path=cfg.host_record_path,
                                  boot_commands=cfg.boot_commands)

    def lookup(self, client: IEc2Client, refs: Refs) -> Optional[InstanceInfo]:
        return client.find_instance(self.name)

    def resource_id(self, live: InstanceInfo) -> str:
        return live.instance_id

    def diff(self, client: IEc2Client, live: Optional[InstanceInfo], refs: Refs) -> Tuple[Action, str]:
        if live is None:
            return Action.CREATE, "absent"
        cfg = self.state.instance
        image_id = self.image_id(client)
        if live.image_id != image_id:
            return Action.REPLACE, f"image {live.image_id} -> {image_id}"
        if live.instance_type != cfg.instance_type:
            return Action.REPLACE, f"instance type {live.instance_type} -> {cfg.instance_type}"
        subnet_id = refs[ResourceKind.SUBNET]
        if live.subnet_id != subnet_id:
            return Action.REPLACE, f"subnet {live.subnet_id} -> {subnet_id or '(new)'}"
        if live.state in ("stopped", "stopping"):
            return Action.UPDATE, f"instance is {live.state}"
        return Action.NOOP, "up to date"

    def create(self, client: IEc2Client, refs: Refs) -> str:
        subnet_id = refs[ResourceKind.SUBNET]
        security_group_id = refs[ResourceKind.SECURITY_GROUP]
        assert subnet_id is not None and security_group_id is not None
        cfg = self.state.instance
        return client.create_instance(
            image_id=self.image_id(client),
            instance_type=cfg.instance_type,
            key_name=cfg.key_name,
            subnet_id=subnet_id,
            security_group_id=security_group_id,
            disk_size=cfg.disk_size,
            user_data=self.user_data(),
            tags=self.tags,
        )

    def update(self, client: IEc2Client, live: InstanceInfo, refs: Refs):
        client.start_instance(live.instance_id)

    def delete(self, client: IEc2Client, live: InstanceInfo, refs: Refs):
        client.delete_instance(live.instance_id)


HANDLER_TYPES = (
    KeyPairHandler,
    VpcHandler,
    SubnetHandler,
    InternetGatewayHandler,
    RouteTableHandler,
    RouteTableAssociationHandler,
    SecurityGroupHandler,
    InstanceHandler,
)
