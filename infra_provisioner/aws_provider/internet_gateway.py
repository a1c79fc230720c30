# pyright: reportTypedDictNotRequiredAccess=false

from typing import Dict, Optional

from mypy_boto3_ec2.client import EC2Client

from ..types import GatewayInfo
from .tags import as_tag_dict, name_filters, tag_specifications


def as_gateway_info(igw) -> GatewayInfo:
    return GatewayInfo(
        gateway_id=igw['InternetGatewayId'],
        gateway_name=as_tag_dict(igw).get('Name', ''),
        attached_vpc_ids=[att['VpcId'] for att in igw.get('Attachments', []) if att.get('State') in ('available', 'attached')],
    )


def find_internet_gateway(client: EC2Client, vpc_id: str, gateway_name: str) -> Optional[GatewayInfo]:
    response = client.describe_internet_gateways(Filters=name_filters(gateway_name))
    gateways = [as_gateway_info(igw) for igw in response['InternetGateways']]
    # 只认挂载在当前 VPC 上的 gateway
    for gateway in gateways:
        if vpc_id in gateway.attached_vpc_ids:
            return gateway
    return None


def create_internet_gateway(client: EC2Client, vpc_id: str, tags: Dict[str, str]):
    response = client.create_internet_gateway(TagSpecifications=tag_specifications('internet-gateway', tags))  # pyright: ignore[reportArgumentType]
    igw_id = response['InternetGateway']['InternetGatewayId']

    assert type(igw_id) is str

    client.attach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id)
    return igw_id


def delete_internet_gateway(client: EC2Client, gateway_id: str, vpc_id: str):
    client.detach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc_id)
    client.delete_internet_gateway(InternetGatewayId=gateway_id)
