# pyright: reportTypedDictNotRequiredAccess=false

from typing import Optional

from mypy_boto3_ec2.client import EC2Client
from mypy_boto3_ec2.type_defs import ImageTypeDef

from ..types import ImageInfo


def as_image_info(image: ImageTypeDef):
    assert type(image['ImageId']) is str
    assert type(image['Name']) is str

    return ImageInfo(image_id=image['ImageId'], image_name=image['Name'], creation_date=image.get('CreationDate', ''))


def find_image(client: EC2Client, image_name: str, owner: str) -> Optional[ImageInfo]:
    """Return the newest available image matching ``image_name`` (wildcards allowed)."""
    result = []

    next_token = None
    while True:
        kwargs = dict()
        if next_token:
            kwargs['NextToken'] = next_token

        response = client.describe_images(Filters=[
            {'Name': 'name', 'Values': [image_name]},
            {'Name': 'state', 'Values': ['available']},
        ],
            Owners=[owner],
            MaxResults=1000, **kwargs)

        result.extend([as_image_info(image) for image in response['Images']])

        next_token = response.get('NextToken')
        if not next_token:
            break

    if not result:
        return None
    return max(result, key=lambda image: image.creation_date)
