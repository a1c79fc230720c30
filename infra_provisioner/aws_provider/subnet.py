# pyright: reportTypedDictNotRequiredAccess=false

from typing import Dict, Optional

from mypy_boto3_ec2.client import EC2Client
from mypy_boto3_ec2.type_defs import SubnetTypeDef

from utils.wait_until import wait_until

from ..types import SubnetInfo
from .tags import as_tag_dict, name_filters, tag_specifications


def as_subnet_info(subnet: SubnetTypeDef):
    subnet_id = subnet['SubnetId']
    zone_id = subnet['AvailabilityZone']
    status = subnet['State']
    cidr_block = subnet['CidrBlock']
    subnet_name = as_tag_dict(subnet).get('Name', '')

    assert type(subnet_id) is str
    assert type(zone_id) is str
    assert type(status) is str
    assert type(cidr_block) is str

    return SubnetInfo(
        subnet_id=subnet_id,
        subnet_name=subnet_name,
        zone_id=zone_id,
        state=status,
        cidr_block=cidr_block
    )


def find_subnet(client: EC2Client, vpc_id: str, subnet_name: str) -> Optional[SubnetInfo]:
    response = client.describe_subnets(Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}, *name_filters(subnet_name)])
    subnets = [as_subnet_info(subnet) for subnet in response['Subnets']]
    return subnets[0] if subnets else None


def create_subnet(client: EC2Client, vpc_id: str, zone_id: str, cidr_block: str, map_public_ip: bool, tags: Dict[str, str]):
    response = client.create_subnet(
        VpcId=vpc_id,
        CidrBlock=cidr_block,
        AvailabilityZone=zone_id,
        TagSpecifications=tag_specifications('subnet', tags)  # pyright: ignore[reportArgumentType]
    )

    subnet_id = response['Subnet']['SubnetId']

    assert type(subnet_id) is str

    def _available():
        resp = client.describe_subnets(SubnetIds=[subnet_id])
        subnets = resp['Subnets']
        return len(subnets) > 0 and subnets[0]['State'] == 'available'

    wait_until(_available, timeout=120, retry_interval=3)

    if map_public_ip:
        client.modify_subnet_attribute(SubnetId=subnet_id, MapPublicIpOnLaunch={'Value': True})

    return subnet_id


def delete_subnet(client: EC2Client, subnet_id: str):
    client.delete_subnet(SubnetId=subnet_id)
