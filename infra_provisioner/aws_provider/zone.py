from typing import List

from mypy_boto3_ec2.client import EC2Client


def get_zone_ids(client: EC2Client) -> List[str]:
    response = client.describe_availability_zones(Filters=[{'Name': 'state', 'Values': ['available']}])
    return [zone['ZoneName'] for zone in response['AvailabilityZones']]
