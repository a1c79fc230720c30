from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class ResourceKind(str, Enum):
    KEY_PAIR = "key_pair"
    VPC = "vpc"
    SUBNET = "subnet"
    INTERNET_GATEWAY = "internet_gateway"
    ROUTE_TABLE = "route_table"
    ROUTE_TABLE_ASSOCIATION = "route_table_association"
    SECURITY_GROUP = "security_group"
    INSTANCE = "instance"


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    NOOP = "noop"


@dataclass(frozen=True)
class IngressRule:
    port: int
    protocol: str = "tcp"
    source: str = "0.0.0.0/0"

    def __str__(self):
        return f"{self.protocol}/{self.port} from {self.source}"


@dataclass
class VpcInfo:
    vpc_id: str
    vpc_name: str
    cidr_block: str
    state: str


@dataclass
class SubnetInfo:
    subnet_id: str
    subnet_name: str
    zone_id: str
    cidr_block: str
    state: str


@dataclass
class GatewayInfo:
    gateway_id: str
    gateway_name: str
    attached_vpc_ids: List[str] = field(default_factory=list)


@dataclass
class RouteTableInfo:
    route_table_id: str
    route_table_name: str
    # destination cidr -> gateway id
    routes: Dict[str, str] = field(default_factory=dict)
    # subnet id -> association id
    associations: Dict[str, str] = field(default_factory=dict)


@dataclass
class SecurityGroupInfo:
    security_group_id: str
    security_group_name: str
    ingress: FrozenSet[IngressRule] = frozenset()


@dataclass
class InstanceInfo:
    instance_id: str
    instance_name: str
    state: str
    image_id: str
    instance_type: str
    subnet_id: Optional[str] = None
    public_ip: Optional[str] = None
    private_ip: Optional[str] = None


@dataclass
class KeyPairInfo:
    key_pair_name: str
    finger_print: str
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class ImageInfo:
    image_id: str
    image_name: str
    creation_date: str = ""
