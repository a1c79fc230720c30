from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .types import (GatewayInfo, ImageInfo, IngressRule, InstanceInfo, KeyPairInfo, RouteTableInfo,
                    SecurityGroupInfo, SubnetInfo, VpcInfo)


class IEc2Client(ABC):
    region_id: str

    @abstractmethod
    def get_zone_ids(self) -> List[str]:
        ...

    @abstractmethod
    def find_image(self, image_name: str, owner: str) -> Optional[ImageInfo]:
        ...

    @abstractmethod
    def get_keypair(self, key_pair_name: str) -> Optional[KeyPairInfo]:
        ...

    @abstractmethod
    def import_keypair(self, key_pair_name: str, public_key: str, tags: Dict[str, str]):
        ...

    @abstractmethod
    def delete_keypair(self, key_pair_name: str):
        ...

    @abstractmethod
    def find_vpc(self, vpc_name: str) -> Optional[VpcInfo]:
        ...

    @abstractmethod
    def create_vpc(self, cidr_block: str, tags: Dict[str, str]) -> str:
        ...

    @abstractmethod
    def delete_vpc(self, vpc_id: str):
        ...

    @abstractmethod
    def find_subnet(self, vpc_id: str, subnet_name: str) -> Optional[SubnetInfo]:
        ...

    @abstractmethod
    def create_subnet(self, vpc_id: str, zone_id: str, cidr_block: str, map_public_ip: bool, tags: Dict[str, str]) -> str:
        ...

    @abstractmethod
    def delete_subnet(self, subnet_id: str):
        ...

    @abstractmethod
    def find_internet_gateway(self, vpc_id: str, gateway_name: str) -> Optional[GatewayInfo]:
        ...

    @abstractmethod
    def create_internet_gateway(self, vpc_id: str, tags: Dict[str, str]) -> str:
        ...

    @abstractmethod
    def delete_internet_gateway(self, gateway_id: str, vpc_id: str):
        ...

    @abstractmethod
    def find_route_table(self, vpc_id: str, route_table_name: str) -> Optional[RouteTableInfo]:
        ...

    @abstractmethod
    def create_route_table(self, vpc_id: str, tags: Dict[str, str]) -> str:
        ...

    @abstractmethod
    def create_route(self, route_table_id: str, destination_cidr: str, gateway_id: str):
        ...

    @abstractmethod
    def delete_route_table(self, route_table_id: str):
        ...

    @abstractmethod
    def associate_route_table(self, route_table_id: str, subnet_id: str) -> str:
        ...

    @abstractmethod
    def disassociate_route_table(self, association_id: str):
        ...

    @abstractmethod
    def find_security_group(self, vpc_id: str, security_group_name: str) -> Optional[SecurityGroupInfo]:
        ...

    @abstractmethod
    def create_security_group(self, vpc_id: str, security_group_name: str, description: str, tags: Dict[str, str]) -> str:
        ...

    @abstractmethod
    def authorize_ingress(self, security_group_id: str, rules: List[IngressRule]):
        ...

    @abstractmethod
    def revoke_ingress(self, security_group_id: str, rules: List[IngressRule]):
        ...

    @abstractmethod
    def delete_security_group(self, security_group_id: str):
        ...

    @abstractmethod
    def find_instance(self, instance_name: str) -> Optional[InstanceInfo]:
        ...

    @abstractmethod
    def describe_instance(self, instance_id: str) -> Optional[InstanceInfo]:
        ...

    @abstractmethod
    def create_instance(
        self,
        *,
        image_id: str,
        instance_type: str,
        key_name: str,
        subnet_id: str,
        security_group_id: str,
        disk_size: int,
        user_data: str,
        tags: Dict[str, str],
    ) -> str:
        ...

    @abstractmethod
    def start_instance(self, instance_id: str):
        ...

    @abstractmethod
    def delete_instance(self, instance_id: str):
        ...
