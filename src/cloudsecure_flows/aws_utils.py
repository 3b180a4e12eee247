"""
AWS utilities for CloudSecure Flows: uploading result files to S3.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigError, FatalIOError, UploadError

logger = logging.getLogger(__name__)


class AWSClientFactory:
    """Factory for creating AWS clients with consistent configuration."""

    @staticmethod
    def create_client(
        service: str, region: Optional[str] = None, profile: Optional[str] = None
    ) -> Any:
        """Create a boto3 client with optional profile and region."""
        session = boto3.Session(profile_name=profile) if profile else boto3.Session()
        return session.client(service, region_name=region)


class RegionResolver:
    """Handles AWS region resolution logic."""

    DEFAULT_REGION = "us-east-1"

    @classmethod
    def resolve_region(cls, region: Optional[str] = None) -> str:
        """Resolve AWS region from parameter, environment, or default."""
        if region:
            return region

        resolved_region = (
            os.environ.get("AWS_REGION")
            or os.environ.get("AWS_DEFAULT_REGION")
            or cls.DEFAULT_REGION
        )

        if resolved_region == cls.DEFAULT_REGION:
            logger.info(f"No region specified, using default: {resolved_region}")

        return resolved_region


@dataclass
class UploadTarget:
    """Where a result file goes; preset_name selects it for filter runs."""

    bucket_name: str
    folder_name: str = ""
    profile_name: str = ""
    region: str = ""
    preset_name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadTarget":
        if not data.get("bucket_name"):
            raise ConfigError("S3 configuration is missing bucket_name")
        return cls(
            bucket_name=data["bucket_name"],
            folder_name=data.get("folder_name", ""),
            profile_name=data.get("profile_name", ""),
            region=data.get("region", ""),
            preset_name=data.get("preset_name", ""),
        )

    def object_key(self, file_path: str) -> str:
        name = os.path.basename(file_path)
        folder = self.folder_name.strip("/")
        return f"{folder}/{name}" if folder else name

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def load_upload_targets(path: str) -> list[UploadTarget]:
    """Load S3 targets; the file holds a JSON array or a single object."""
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        return []
    except json.JSONDecodeError as e:
        raise ConfigError(f"S3 config file '{path}' is not valid JSON: {e}")
    except OSError as e:
        raise FatalIOError(f"Cannot read S3 config file '{path}': {e}")

    match data:
        case list():
            return [UploadTarget.from_dict(item) for item in data]
        case dict():
            return [UploadTarget.from_dict(data)]
        case _:
            raise ConfigError(f"S3 config file '{path}' has an unexpected format")


def select_target(
    targets: list[UploadTarget], preset_name: Optional[str] = None
) -> Optional[UploadTarget]:
    """Target configured for preset_name, else the first one, else None."""
    if preset_name:
        for target in targets:
            if target.preset_name == preset_name:
                return target
        logger.info(f"No S3 config for preset '{preset_name}', using default")
    return targets[0] if targets else None


class S3Uploader:
    """Uploads local files to an S3 bucket folder."""

    def __init__(self, target: UploadTarget, s3_client: Any = None):
        self.target = target
        if s3_client is None:
            try:
                s3_client = AWSClientFactory.create_client(
                    "s3",
                    RegionResolver.resolve_region(target.region or None),
                    target.profile_name or None,
                )
            except BotoCoreError as e:
                raise UploadError(f"Cannot create S3 client: {e}") from e
        self.s3_client = s3_client

    def upload(self, file_path: str) -> str:
        """Upload file_path and return its s3:// URI."""
        if not os.path.isfile(file_path):
            raise FatalIOError(f"File to upload not found: {file_path}")

        key = self.target.object_key(file_path)
        try:
            self.s3_client.upload_file(file_path, self.target.bucket_name, key)
        except (BotoCoreError, ClientError) as e:
            raise UploadError(f"Error uploading {file_path} to S3: {e}") from e

        uri = f"s3://{self.target.bucket_name}/{key}"
        logger.info(f"Uploaded {file_path} to {uri}")
        return uri


# Public API functions
def upload_file(target: UploadTarget, file_path: str) -> str:
    """Upload a result file to the given S3 target."""
    return S3Uploader(target).upload(file_path)
