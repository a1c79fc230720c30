from typing import Dict, List

from ..desired_state import DEFAULT_COMMON_TAG_KEY, DEFAULT_COMMON_TAG_VALUE


def as_tag_list(tags: Dict[str, str]) -> List[dict]:
    return [{'Key': key, 'Value': value} for key, value in tags.items()]


def as_tag_dict(resource) -> Dict[str, str]:
    if resource.get('Tags'):
        return {tag['Key']: tag['Value'] for tag in resource['Tags']}
    return dict()


def name_filters(name: str) -> List[dict]:
    return [
        {'Name': 'tag:Name', 'Values': [name]},
        {'Name': f'tag:{DEFAULT_COMMON_TAG_KEY}', 'Values': [DEFAULT_COMMON_TAG_VALUE]},
    ]


def tag_specifications(resource_type: str, tags: Dict[str, str]) -> List[dict]:
    return [{'ResourceType': resource_type, 'Tags': as_tag_list(tags)}]
