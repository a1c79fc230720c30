# pyright: reportTypedDictNotRequiredAccess=false

from typing import Dict, Optional

from loguru import logger
from mypy_boto3_ec2.client import EC2Client

from utils.wait_until import wait_until

from ..errors import PlanError
from ..types import InstanceInfo
from .tags import as_tag_dict, name_filters, tag_specifications

LIVE_STATES = ['pending', 'running', 'stopping', 'stopped']


def as_instance_info(instance) -> InstanceInfo:
    return InstanceInfo(
        instance_id=instance['InstanceId'],
        instance_name=as_tag_dict(instance).get('Name', ''),
        state=instance['State']['Name'],
        image_id=instance['ImageId'],
        instance_type=instance['InstanceType'],
        subnet_id=instance.get('SubnetId'),
        public_ip=instance.get('PublicIpAddress'),
        private_ip=instance.get('PrivateIpAddress'),
    )


def find_instance(client: EC2Client, instance_name: str) -> Optional[InstanceInfo]:
    response = client.describe_instances(Filters=[
        *name_filters(instance_name),
        # AWS API 会返回已经销毁的实例，状态为 terminated，应该被忽略
        {'Name': 'instance-state-name', 'Values': LIVE_STATES},
    ])

    instances = [as_instance_info(instance)
                 for reservation in response['Reservations']
                 for instance in reservation['Instances']]

    if len(instances) > 1:
        raise PlanError(f"Unexpected: multiple live instances named {instance_name}: {[i.instance_id for i in instances]}")
    return instances[0] if instances else None


def describe_instance(client: EC2Client, instance_id: str) -> Optional[InstanceInfo]:
    response = client.describe_instances(InstanceIds=[instance_id])
    for reservation in response['Reservations']:
        for instance in reservation['Instances']:
            return as_instance_info(instance)
    return None


def create_instance(
    client: EC2Client,
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
    response = client.run_instances(
        ImageId=image_id,
        MinCount=1,
        MaxCount=1,
        KeyName=key_name,
        InstanceType=instance_type,  # pyright: ignore[reportArgumentType]
        UserData=user_data,
        NetworkInterfaces=[{
            'AssociatePublicIpAddress': True,
            'DeviceIndex': 0,
            'SubnetId': subnet_id,
            'Groups': [security_group_id]
        }],
        BlockDeviceMappings=[{
            'DeviceName': '/dev/sda1',
            'Ebs': {
                'VolumeSize': disk_size,
                'VolumeType': 'gp3',
                'DeleteOnTermination': True
            }
        }],
        MetadataOptions={'HttpTokens': 'required', 'HttpEndpoint': 'enabled'},
        TagSpecifications=tag_specifications('instance', tags)  # pyright: ignore[reportArgumentType]
    )
    instance_id = response['Instances'][0]['InstanceId']
    assert type(instance_id) is str
    logger.success(f"Create instance {instance_id}: instance_type={instance_type}, image={image_id}, subnet={subnet_id}")
    return instance_id


def start_instance(client: EC2Client, instance_id: str):
    client.start_instances(InstanceIds=[instance_id])


def delete_instance(client: EC2Client, instance_id: str):
    client.terminate_instances(InstanceIds=[instance_id])

    def _terminated():
        info = describe_instance(client, instance_id)
        return info is None or info.state == 'terminated'

    # 子网和安全组只能在实例彻底销毁后删除
    wait_until(_terminated, timeout=600, retry_interval=5)
