# pyright: reportTypedDictNotRequiredAccess=false

from typing import Dict, Optional

from mypy_boto3_ec2.client import EC2Client
from mypy_boto3_ec2.type_defs import RouteTableTypeDef

from ..types import RouteTableInfo
from .tags import as_tag_dict, name_filters, tag_specifications


def as_route_table_info(rt: RouteTableTypeDef) -> RouteTableInfo:
    routes = {
        route['DestinationCidrBlock']: route['GatewayId']
        for route in rt.get('Routes', [])
        if 'DestinationCidrBlock' in route and 'GatewayId' in route
    }
    associations = {
        assoc['SubnetId']: assoc['RouteTableAssociationId']
        for assoc in rt.get('Associations', [])
        if not assoc.get('Main') and 'SubnetId' in assoc
    }
    route_table_id = rt['RouteTableId']
    assert type(route_table_id) is str

    return RouteTableInfo(
        route_table_id=route_table_id,
        route_table_name=as_tag_dict(rt).get('Name', ''),
        routes=routes,
        associations=associations,
    )


def find_route_table(client: EC2Client, vpc_id: str, route_table_name: str) -> Optional[RouteTableInfo]:
    response = client.describe_route_tables(Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}, *name_filters(route_table_name)])
    tables = [as_route_table_info(rt) for rt in response['RouteTables']]
    return tables[0] if tables else None


def create_route_table(client: EC2Client, vpc_id: str, tags: Dict[str, str]):
    response = client.create_route_table(VpcId=vpc_id, TagSpecifications=tag_specifications('route-table', tags))  # pyright: ignore[reportArgumentType]
    route_table_id = response['RouteTable']['RouteTableId']
    assert type(route_table_id) is str
    return route_table_id


def create_route(client: EC2Client, route_table_id: str, destination_cidr: str, gateway_id: str):
    client.create_route(
        RouteTableId=route_table_id,
        DestinationCidrBlock=destination_cidr,
        GatewayId=gateway_id
    )


def delete_route_table(client: EC2Client, route_table_id: str):
    client.delete_route_table(RouteTableId=route_table_id)


def associate_route_table(client: EC2Client, route_table_id: str, subnet_id: str):
    response = client.associate_route_table(RouteTableId=route_table_id, SubnetId=subnet_id)
    association_id = response['AssociationId']
    assert type(association_id) is str
    return association_id


def disassociate_route_table(client: EC2Client, association_id: str):
    client.disassociate_route_table(AssociationId=association_id)
