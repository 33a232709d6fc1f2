"""
Keeps a policy's notification channel links in step with the declared
channel ids.

Behavioral Contract:
- Ids are compared as sets; order and duplicates do not matter.
- Additions go out as ONE attach call carrying every new id.
- Removals go out as one detach call PER id.
- Every call is attempted even if an earlier one failed; failures are
  reported together afterwards.
"""

import logging
from typing import Iterable, List

from alert_operator.errors.collector import ChannelSyncError, ErrorCollector, ReconcileError
from alert_operator.remote.client import AlertsClient, RemoteNotFoundError

logger = logging.getLogger(__name__)


class ChannelSynchronizer:
    """Diffs desired against applied channel ids and issues the link calls."""

    def __init__(self, client: AlertsClient):
        self.client = client

    def reconcile_channels(
        self,
        policy_id: str,
        desired: Iterable[int],
        applied: Iterable[int],
    ) -> List[int]:
        """
        Attach missing channels and detach removed ones.

        Returns the new baseline (the desired set, sorted). Raises
        ChannelSyncError if any call failed.
        """
        wanted = set(desired)
        current = set(applied)
        to_add = sorted(wanted - current)
        to_remove = sorted(current - wanted)

        errors = ErrorCollector()

        if to_add:
            try:
                self.client.attach_channels(policy_id, to_add)
                logger.info("policy %s: attached channels %s", policy_id, to_add)
            except ReconcileError as e:
                errors.collect(e)

        for channel_id in to_remove:
            try:
                self.client.detach_channel(policy_id, channel_id)
                logger.info("policy %s: detached channel %s", policy_id, channel_id)
            except RemoteNotFoundError:
                # Already unlinked
                logger.debug("policy %s: channel %s was not linked", policy_id, channel_id)
            except ReconcileError as e:
                errors.collect(e)

        if errors:
            raise ChannelSyncError(errors)

        return sorted(wanted)
