# Copyright 2025 Hathor Labs
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import argparse
import logging

from twisted.web.server import Site

from wlsale.cli.chain import open_state
from wlsale.nanocontracts.resources.state import API_PREFIX, build_api_root

logger = logging.getLogger(__name__)


def serve(args: argparse.Namespace) -> int:
    from twisted.internet import reactor

    state = open_state(args.state, read_only=True)
    site = Site(build_api_root(state))
    port = reactor.listenTCP(args.port, site, interface=args.listen)  # type: ignore[attr-defined]
    logger.info('serving /%s/nano_contract/state on %s:%d', API_PREFIX, args.listen, port.getHost().port)
    reactor.run()  # type: ignore[attr-defined]
    return 0
