from dataclasses import dataclass, field
from typing import Dict, List, Optional

import boto3
from mypy_boto3_ec2.client import EC2Client

from ..provider_interface import IEc2Client
from ..types import (GatewayInfo, ImageInfo, IngressRule, InstanceInfo, KeyPairInfo, RouteTableInfo,
                     SecurityGroupInfo, SubnetInfo, VpcInfo)
from . import image, instance, internet_gateway, key_pair, route_table, security_group, subnet, vpc, zone


@dataclass
class AwsClient(IEc2Client):
    region_id: str
    _client: Optional[EC2Client] = field(default=None, repr=False)

    @classmethod
    def new(cls, region_id: str) -> 'AwsClient':
        return AwsClient(region_id=region_id)

    def build(self) -> EC2Client:
        if self._client is None:
            self._client = boto3.client('ec2', region_name=self.region_id)
        return self._client

    def get_zone_ids(self) -> List[str]:
        return zone.get_zone_ids(self.build())

    def find_image(self, image_name: str, owner: str) -> Optional[ImageInfo]:
        return image.find_image(self.build(), image_name, owner)

    def get_keypair(self, key_pair_name: str) -> Optional[KeyPairInfo]:
        return key_pair.get_keypair(self.build(), key_pair_name)

    def import_keypair(self, key_pair_name: str, public_key: str, tags: Dict[str, str]):
        return key_pair.import_keypair(self.build(), key_pair_name, public_key, tags)

    def delete_keypair(self, key_pair_name: str):
        return key_pair.delete_keypair(self.build(), key_pair_name)

    def find_vpc(self, vpc_name: str) -> Optional[VpcInfo]:
        return vpc.find_vpc(self.build(), vpc_name)

    def create_vpc(self, cidr_block: str, tags: Dict[str, str]) -> str:
        return vpc.create_vpc(self.build(), cidr_block, tags)

    def delete_vpc(self, vpc_id: str):
        return vpc.delete_vpc(self.build(), vpc_id)

    def find_subnet(self, vpc_id: str, subnet_name: str) -> Optional[SubnetInfo]:
        return subnet.find_subnet(self.build(), vpc_id, subnet_name)

    def create_subnet(self, vpc_id: str, zone_id: str, cidr_block: str, map_public_ip: bool, tags: Dict[str, str]) -> str:
        return subnet.create_subnet(self.build(), vpc_id, zone_id, cidr_block, map_public_ip, tags)

    def delete_subnet(self, subnet_id: str):
        return subnet.delete_subnet(self.build(), subnet_id)

    def find_internet_gateway(self, vpc_id: str, gateway_name: str) -> Optional[GatewayInfo]:
        return internet_gateway.find_internet_gateway(self.build(), vpc_id, gateway_name)

    def create_internet_gateway(self, vpc_id: str, tags: Dict[str, str]) -> str:
        return internet_gateway.create_internet_gateway(self.build(), vpc_id, tags)

    def delete_internet_gateway(self, gateway_id: str, vpc_id: str):
        return internet_gateway.delete_internet_gateway(self.build(), gateway_id, vpc_id)

    def find_route_table(self, vpc_id: str, route_table_name: str) -> Optional[RouteTableInfo]:
        return route_table.find_route_table(self.build(), vpc_id, route_table_name)

    def create_route_table(self, vpc_id: str, tags: Dict[str, str]) -> str:
        return route_table.create_route_table(self.build(), vpc_id, tags)

    def create_route(self, route_table_id: str, destination_cidr: str, gateway_id: str):
        return route_table.create_route(self.build(), route_table_id, destination_cidr, gateway_id)

    def delete_route_table(self, route_table_id: str):
        return route_table.delete_route_table(self.build(), route_table_id)

    def associate_route_table(self, route_table_id: str, subnet_id: str) -> str:
        return route_table.associate_route_table(self.build(), route_table_id, subnet_id)

    def disassociate_route_table(self, association_id: str):
        return route_table.disassociate_route_table(self.build(), association_id)

    def find_security_group(self, vpc_id: str, security_group_name: str) -> Optional[SecurityGroupInfo]:
        return security_group.find_security_group(self.build(), vpc_id, security_group_name)

    def create_security_group(self, vpc_id: str, security_group_name: str, description: str, tags: Dict[str, str]) -> str:
        return security_group.create_security_group(self.build(), vpc_id, security_group_name, description, tags)

    def authorize_ingress(self, security_group_id: str, rules: List[IngressRule]):
        return security_group.authorize_ingress(self.build(), security_group_id, rules)

    def revoke_ingress(self, security_group_id: str, rules: List[IngressRule]):
        return security_group.revoke_ingress(self.build(), security_group_id, rules)

    def delete_security_group(self, security_group_id: str):
        return security_group.delete_security_group(self.build(), security_group_id)

    def find_instance(self, instance_name: str) -> Optional[InstanceInfo]:
        return instance.find_instance(self.build(), instance_name)

    def describe_instance(self, instance_id: str) -> Optional[InstanceInfo]:
        return instance.describe_instance(self.build(), instance_id)

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
        return instance.create_instance(
            self.build(),
            image_id=image_id,
            instance_type=instance_type,
            key_name=key_name,
            subnet_id=subnet_id,
            security_group_id=security_group_id,
            disk_size=disk_size,
            user_data=user_data,
            tags=tags,
        )

    def start_instance(self, instance_id: str):
        return instance.start_instance(self.build(), instance_id)

    def delete_instance(self, instance_id: str):
        return instance.delete_instance(self.build(), instance_id)
