# pyright: reportTypedDictNotRequiredAccess=false

from typing import Dict, FrozenSet, List, Optional

from mypy_boto3_ec2.client import EC2Client
from mypy_boto3_ec2.type_defs import SecurityGroupTypeDef

from ..types import IngressRule, SecurityGroupInfo
from .tags import tag_specifications


def _ingress_rules(rep: SecurityGroupTypeDef) -> FrozenSet[IngressRule]:
    rules = set()
    for permission in rep.get('IpPermissions', []):
        protocol = permission['IpProtocol']
        from_port = permission.get('FromPort')
        to_port = permission.get('ToPort')
        # port ranges are never declared by the desired state, they show up as drift
        if from_port is None or from_port != to_port:
            port = -1
        else:
            port = from_port
        for ip_range in permission.get('IpRanges', []):
            rules.add(IngressRule(port=port, protocol=protocol, source=ip_range['CidrIp']))
    return frozenset(rules)


def as_security_group_info(rep: SecurityGroupTypeDef):
    security_group_id = rep['GroupId']
    security_group_name = rep['GroupName']

    assert type(security_group_id) is str
    assert type(security_group_name) is str

    return SecurityGroupInfo(security_group_id=security_group_id,
                             security_group_name=security_group_name,
                             ingress=_ingress_rules(rep))


def find_security_group(client: EC2Client, vpc_id: str, security_group_name: str) -> Optional[SecurityGroupInfo]:
    rep = client.describe_security_groups(Filters=[
        {'Name': 'vpc-id', 'Values': [vpc_id]},
        {'Name': 'group-name', 'Values': [security_group_name]},
    ])
    groups = [as_security_group_info(sg) for sg in rep['SecurityGroups']]
    return groups[0] if groups else None


def create_security_group(client: EC2Client, vpc_id: str, security_group_name: str, description: str, tags: Dict[str, str]):
    rep = client.create_security_group(
        GroupName=security_group_name,
        Description=description,
        VpcId=vpc_id,
        TagSpecifications=tag_specifications('security-group', tags),  # pyright: ignore[reportArgumentType]
    )

    security_group_id = rep['GroupId']
    assert type(security_group_id) is str

    # AWS 默认创建 0.0.0.0/0 全部放行的 egress 规则，无需额外配置
    return security_group_id


def _as_permissions(rules: List[IngressRule]) -> List[dict]:
    return [
        {
            'IpProtocol': rule.protocol,
            'FromPort': rule.port,
            'ToPort': rule.port,
            'IpRanges': [{'CidrIp': rule.source}]
        }
        for rule in rules
    ]


def authorize_ingress(client: EC2Client, security_group_id: str, rules: List[IngressRule]):
    if not rules:
        return
    client.authorize_security_group_ingress(GroupId=security_group_id, IpPermissions=_as_permissions(rules))  # pyright: ignore[reportArgumentType]


def revoke_ingress(client: EC2Client, security_group_id: str, rules: List[IngressRule]):
    if not rules:
        return
    client.revoke_security_group_ingress(GroupId=security_group_id, IpPermissions=_as_permissions(rules))  # pyright: ignore[reportArgumentType]


def delete_security_group(client: EC2Client, security_group_id: str):
    client.delete_security_group(GroupId=security_group_id)
