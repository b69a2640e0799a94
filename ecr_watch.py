#!/usr/bin/env python3
"""
ECR Watch
Blocks until a new image matching a tag pattern is pushed to an ECR repository,
then prints the new image's tags (comma separated) and exits.
"""

import sys
import time
import argparse
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from watch_core.errors import WatchError
from watch_core.logging_utils import setup_logging
from watch_core.models import ZERO_TIME, WatchConfig, WatchState
from watch_core import config_utils as cu
from watch_core import registry_utils as ru
from watch_core import metrics_utils as mu


class EcrWatcher:
    """Polls one repository and reports the first newer image."""

    def __init__(self, config: WatchConfig, ecr_client=None, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.state = WatchState()
        self.ecr_client = ecr_client if ecr_client is not None else ru.create_ecr_client(config, self.logger)
        self.init_metrics()

    def init_metrics(self):
        m = mu.init_metrics(self.logger)
        self.metrics_enabled = m['enabled']
        self.counter_polls = m['polls']
        self.gauge_matched = m['matched']
        self.gauge_most_recent = m['most_recent']

    def poll(self) -> Tuple[datetime, List[str]]:
        """Run one list + describe cycle and return the newest (push time, tags)."""
        image_ids = ru.list_matching_image_ids(self.ecr_client, self.config, self.logger)
        details = ru.describe_image_details(self.ecr_client, self.config, image_ids)
        most_recent, tags = ru.select_most_recent(details)
        if self.metrics_enabled:
            self.counter_polls.inc()
            self.gauge_matched.set(len(image_ids))
            self.gauge_most_recent.set(0 if most_recent == ZERO_TIME else most_recent.timestamp())
        return most_recent, tags

    def check_for_new_image(self) -> Optional[List[str]]:
        """Poll once and update state.

        Returns the tags of the new most recent image when one has appeared
        since the previous poll, otherwise None. The first poll only records
        a baseline and never reports.
        """
        most_recent, tags = self.poll()
        if self.state.primed and most_recent > self.state.most_recent_pushed_at:
            return tags

        # Stored state follows the latest poll even when it moved backwards
        self.state.most_recent_pushed_at = most_recent
        self.state.most_recent_tags = tags
        self.state.primed = True
        self.logger.info(f"most recent image pushed at {self._format_time(most_recent)}")
        return None

    def run(self) -> List[str]:
        """Poll until a newer image shows up and return its tags."""
        self.logger.info("running")
        while True:
            tags = self.check_for_new_image()
            if tags is not None:
                self.logger.info("exiting")
                return tags
            self.logger.info(f"sleeping for {cu.format_duration(self.config.interval)}")
            time.sleep(self.config.interval)

    @staticmethod
    def _format_time(value: datetime) -> str:
        if value == ZERO_TIME:
            return "never"
        return value.isoformat()


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='ecr-watch',
        description='Wait for a new image matching a tag pattern to be pushed to an ECR repository, '
                    'then print its tags and exit.',
        epilog='This application is configured via the environment. The following environment\n'
               'variables can be used:\n\n' + cu.usage_table(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.parse_args(argv)

    cu.load_env_file()
    logger = setup_logging()

    try:
        config = cu.load_config()
        watcher = EcrWatcher(config, logger=logger)
        tags = watcher.run()
    except WatchError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal. Shutting down...")
        sys.exit(1)

    sys.stdout.write(','.join(tags))
    sys.stdout.flush()


if __name__ == "__main__":
    main()
