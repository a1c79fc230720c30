import ipaddress
import tomllib
from typing import List, Optional

from pydantic import BaseModel, model_validator

from .types import IngressRule


DEFAULT_COMMON_TAG_KEY = "managed-by"
DEFAULT_COMMON_TAG_VALUE = "nexus-deployer"
DEFAULT_DEPLOYMENT_TAG_KEY = "deployment"

DEFAULT_VPC_CIDR = "10.0.0.0/16"
DEFAULT_SUBNET_CIDR = "10.0.1.0/24"


class IngressRuleConfig(BaseModel):
    port: int
    protocol: str = "tcp"
    source: str = "0.0.0.0/0"

    def as_rule(self) -> IngressRule:
        return IngressRule(port=self.port, protocol=self.protocol, source=self.source)


def _default_ingress() -> List[IngressRuleConfig]:
    return [IngressRuleConfig(port=22), IngressRuleConfig(port=8081)]


class NetworkConfig(BaseModel):
    vpc_cidr: str = DEFAULT_VPC_CIDR
    subnet_cidr: str = DEFAULT_SUBNET_CIDR
    # 为空时使用 region 的第一个可用区
    availability_zone: Optional[str] = None
    map_public_ip: bool = True

    @model_validator(mode="after")
    def _subnet_inside_vpc(self):
        vpc = ipaddress.ip_network(self.vpc_cidr)
        subnet = ipaddress.ip_network(self.subnet_cidr)
        if not subnet.subnet_of(vpc):
            raise ValueError(f"subnet {self.subnet_cidr} is not inside vpc {self.vpc_cidr}")
        return self


class AccessPolicyConfig(BaseModel):
    description: str = "nexus host access"
    ingress: List[IngressRuleConfig] = _default_ingress()

    @model_validator(mode="after")
    def _no_duplicates(self):
        rules = [rule.as_rule() for rule in self.ingress]
        if len(set(rules)) != len(rules):
            raise ValueError("access policy contains duplicate ingress rules")
        return self

    def rules(self) -> List[IngressRule]:
        return [rule.as_rule() for rule in self.ingress]

    def open_ports(self) -> List[int]:
        return sorted({rule.port for rule in self.ingress})


class InstanceConfig(BaseModel):
    image_id: Optional[str] = None
    # 按名称查找 AMI（image_id 为空时使用）
    image_name: Optional[str] = None
    image_owner: str = "099720109477"
    instance_type: str = "t2.medium"
    key_name: str
    ssh_key_path: Optional[str] = None
    ssh_user: str = "ubuntu"
    ssh_port: int = 22
    login_account_key: str = "ansible_user"
    disk_size: int = 20
    host_record_path: str = "/var/lib/host-handoff/hosts"
    boot_commands: List[str] = []

    @model_validator(mode="after")
    def _image_selected(self):
        if not self.image_id and not self.image_name:
            raise ValueError("either image_id or image_name must be set")
        return self


class DesiredState(BaseModel):
    deployment_id: str
    region: str
    network: NetworkConfig = NetworkConfig()
    access_policy: AccessPolicyConfig = AccessPolicyConfig()
    instance: InstanceConfig

    def resource_name(self, resource: str) -> str:
        return f"{self.deployment_id}-{resource}"

    def tags(self, resource: str) -> dict:
        return {
            "Name": self.resource_name(resource),
            DEFAULT_COMMON_TAG_KEY: DEFAULT_COMMON_TAG_VALUE,
            DEFAULT_DEPLOYMENT_TAG_KEY: self.deployment_id,
        }


def load_desired_state(path: str) -> DesiredState:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return DesiredState(**data)
