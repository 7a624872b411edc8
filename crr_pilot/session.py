import logging
from typing import Dict, Optional

import boto3

logger = logging.getLogger(__name__)


def make_session(profile: Optional[str] = None, region: Optional[str] = None) -> boto3.Session:
    """Create a boto3 session, using the shared credentials profile when given"""
    return boto3.Session(profile_name=profile or None, region_name=region)


class ClientFactory:
    """
    Hands out boto3 clients for one credentials profile.
    S3 clients are cached per region since destinations may live anywhere.
    """

    def __init__(self, profile: Optional[str] = None, default_region: Optional[str] = None):
        self.profile = profile
        self.default_region = default_region
        self._s3_clients: Dict[str, object] = {}
        self._iam = None

    def s3(self, region: Optional[str] = None):
        region = region or self.default_region
        if region not in self._s3_clients:
            logger.debug("Creating S3 client for region %s", region)
            self._s3_clients[region] = make_session(self.profile, region).client("s3")
        return self._s3_clients[region]

    def iam(self):
        # IAM is global; the session region does not matter
        if self._iam is None:
            self._iam = make_session(self.profile, self.default_region).client("iam")
        return self._iam
