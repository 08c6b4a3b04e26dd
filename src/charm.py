#!/usr/bin/env python3
# Copyright 2021 Canonical Ltd.
# See LICENSE file for licensing details.


"""A charm exposing the APT sources converter as an action."""

import logging

from charms.apt_sources.v0 import deb822
from ops.charm import ActionEvent, CharmBase, StartEvent
from ops.main import main
from ops.model import ActiveStatus

logger = logging.getLogger(__name__)


class AptSourcesCharm(CharmBase):
    """Convert one-line-style APT sources to deb822 on request."""

    def __init__(self, *args):
        super().__init__(*args)
        self.framework.observe(self.on.start, self._on_start)
        self.framework.observe(self.on.convert_action, self._on_convert_action)

    def _on_start(self, _: StartEvent) -> None:
        self.unit.status = ActiveStatus()

    def _on_convert_action(self, event: ActionEvent) -> None:
        """Convert the `sources` parameter, or the built-in example if it is not given."""
        sources = event.params.get("sources")
        if sources is None:
            sources = deb822.EXAMPLE_SOURCES
        if not sources.strip():
            event.fail("No sources to convert.")
            return

        result, skipped = deb822.convert_with_errors(sources)
        if skipped:
            logger.warning("could not parse %d source line(s): %s", len(skipped), skipped)
        event.set_results({"deb822": result, "unparseable": len(skipped)})


if __name__ == "__main__":
    main(AptSourcesCharm)
