# pyright: reportTypedDictNotRequiredAccess=false
from typing import Dict, Optional

from loguru import logger
from mypy_boto3_ec2.client import EC2Client
from mypy_boto3_ec2.type_defs import VpcTypeDef

from utils.wait_until import wait_until

from ..errors import PlanError
from ..types import VpcInfo
from .tags import as_tag_dict, name_filters, tag_specifications


def as_vpc_info(vpc_dict: VpcTypeDef):
    vpc_id = vpc_dict['VpcId']
    vpc_name = as_tag_dict(vpc_dict).get('Name', '')
    cidr_block = vpc_dict['CidrBlock']
    state = vpc_dict['State']

    assert type(vpc_id) is str
    assert type(cidr_block) is str
    assert type(state) is str

    return VpcInfo(vpc_id=vpc_id, vpc_name=vpc_name, cidr_block=cidr_block, state=state)


def find_vpc(client: EC2Client, vpc_name: str) -> Optional[VpcInfo]:
    response = client.describe_vpcs(Filters=name_filters(vpc_name))
    vpcs = [as_vpc_info(vpc) for vpc in response['Vpcs']]
    if len(vpcs) > 1:
        raise PlanError(f"Unexpected: multiple VPCs named {vpc_name}: {[vpc.vpc_id for vpc in vpcs]}")
    return vpcs[0] if vpcs else None


def create_vpc(client: EC2Client, cidr_block: str, tags: Dict[str, str]):
    response = client.create_vpc(CidrBlock=cidr_block, TagSpecifications=tag_specifications('vpc', tags))  # pyright: ignore[reportArgumentType]
    vpc_id = response['Vpc']['VpcId']

    assert type(vpc_id) is str

    def _available() -> bool:
        resp = client.describe_vpcs(VpcIds=[vpc_id])
        vpcs = resp['Vpcs']
        return len(vpcs) > 0 and vpcs[0]['State'] == 'available'

    wait_until(_available, timeout=120, retry_interval=3)

    # public DNS names are needed for the host record lookup through metadata
    client.modify_vpc_attribute(VpcId=vpc_id, EnableDnsSupport={'Value': True})
    client.modify_vpc_attribute(VpcId=vpc_id, EnableDnsHostnames={'Value': True})

    return vpc_id


def delete_vpc(client: EC2Client, vpc_id: str):
    logger.info(f"Deleting VPC {vpc_id}")
    client.delete_vpc(VpcId=vpc_id)
