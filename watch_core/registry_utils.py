from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError, ProfileNotFound

from watch_core.errors import RegistryError, SessionError
from watch_core.models import ZERO_TIME, ImageDetail, WatchConfig

# DescribeImages accepts at most this many image ids per request
DESCRIBE_BATCH_SIZE = 100


def to_aware_utc(dt: Optional[datetime]) -> datetime:
    if dt is None:
        return ZERO_TIME
    if getattr(dt, 'tzinfo', None) is None:
        # ECR returns UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def create_ecr_client(config: WatchConfig, logger):
    """Build an ECR client from the configured profile and region."""
    try:
        session = boto3.Session(profile_name=config.profile, region_name=config.region)
        if session.get_credentials() is None:
            raise SessionError("unable to locate AWS credentials")
        client = session.client('ecr')
    except ProfileNotFound as e:
        raise SessionError(str(e)) from e
    except BotoCoreError as e:
        raise SessionError(f"failed to create AWS session: {e}") from e
    logger.debug(f"ECR client ready for region {config.region}")
    return client


def _base_params(config: WatchConfig) -> Dict[str, Any]:
    params: Dict[str, Any] = {'repositoryName': config.repository}
    if config.registry_id:
        params['registryId'] = config.registry_id
    return params


def list_matching_image_ids(ecr_client, config: WatchConfig, logger) -> List[Dict[str, Any]]:
    """List every image id in the repository whose tag matches the pattern."""
    image_ids: List[Dict[str, Any]] = []
    params = _base_params(config)
    while True:
        try:
            response = ecr_client.list_images(**params)
        except (ClientError, BotoCoreError) as e:
            raise RegistryError('ListImages', e) from e

        for image_id in response.get('imageIds', []):
            tag = image_id.get('imageTag') or ''
            if tag and config.tag_pattern.search(tag):
                logger.info(f"matched tag: {tag}")
                image_ids.append(image_id)

        next_token = response.get('nextToken')
        if not next_token:
            break
        params['nextToken'] = next_token
    return image_ids


def describe_image_details(ecr_client, config: WatchConfig, image_ids: List[Dict[str, Any]]) -> List[ImageDetail]:
    """Describe the given image ids. An empty list makes no request."""
    details: List[ImageDetail] = []
    for start in range(0, len(image_ids), DESCRIBE_BATCH_SIZE):
        params = _base_params(config)
        params['imageIds'] = image_ids[start:start + DESCRIBE_BATCH_SIZE]
        try:
            response = ecr_client.describe_images(**params)
        except (ClientError, BotoCoreError) as e:
            raise RegistryError('DescribeImages', e) from e
        for image_detail in response.get('imageDetails', []):
            details.append(ImageDetail(
                digest=image_detail.get('imageDigest'),
                pushed_at=to_aware_utc(image_detail.get('imagePushedAt')),
                tags=list(image_detail.get('imageTags') or []),
            ))
    return details


def select_most_recent(details: List[ImageDetail]) -> Tuple[datetime, List[str]]:
    """Return the push time and tags of the newest image.

    Only a strictly later push time replaces the current candidate, so of
    several images pushed at the same instant the first one seen wins.
    """
    most_recent = ZERO_TIME
    tags: List[str] = []
    for detail in details:
        if detail.pushed_at > most_recent:
            most_recent = detail.pushed_at
            tags = list(detail.tags)
    return most_recent, tags
