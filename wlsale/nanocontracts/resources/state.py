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

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Union

from hathorlib.nanocontracts.exception import NanoContractDoesNotExist
from hathorlib.nanocontracts.method import Method
from hathorlib.nanocontracts.types import ContractId
from pydantic import Field
from twisted.web.resource import Resource

from wlsale.nanocontracts.api_arguments_parser import parse_nc_method_call
from wlsale.utils.api import ErrorResponse, QueryParams, Response, set_cors

if TYPE_CHECKING:
    from twisted.web.http import Request

    from wlsale.nanocontracts.storage import JournaledSimulator

logger = logging.getLogger(__name__)

API_PREFIX = 'v1a'


class NanoContractStateResource(Resource):
    """ Implements a web server GET API to get a contract state.

    `balances[]` reads the balance of a Hathor token uid (`00` for HTR) or the
    balance held in a token contract, and `calls[]` runs view methods, e.g.
    `calls[]=remaining_allocation("HH5As5aLtzFkcbmbXZmE65wSd22GqPWq2T")`.
    """
    isLeaf = True

    def __init__(self, state: JournaledSimulator) -> None:
        super().__init__()
        self.state = state

    def render_GET(self, request: Request) -> bytes:
        request.setHeader(b'content-type', b'application/json; charset=utf-8')
        set_cors(request, 'GET')

        params = NCStateParams.from_request(request)
        if isinstance(params, ErrorResponse):
            request.setResponseCode(400)
            return params.json_dumpb()

        try:
            nc_id_bytes = ContractId(bytes.fromhex(params.id.removeprefix('0x')))
        except ValueError:
            request.setResponseCode(400)
            error_response = ErrorResponse(success=False, error=f'Invalid id: {params.id}')
            return error_response.json_dumpb()

        try:
            blueprint_class = self.state.get_blueprint_class(nc_id_bytes)
        except NanoContractDoesNotExist:
            request.setResponseCode(404)
            error_response = ErrorResponse(success=False, error=f'Contract {params.id} does not exist.')
            return error_response.json_dumpb()

        value: Any
        # Get balances.
        balances: dict[str, Union[NCValueSuccessResponse, NCValueErrorResponse]] = {}
        token_contracts = set(self.state.get_contract_ids())
        for token_uid_hex in params.balances:
            try:
                token_uid = bytes.fromhex(token_uid_hex.removeprefix('0x'))
            except ValueError:
                balances[token_uid_hex] = NCValueErrorResponse(errmsg='invalid token id')
                continue

            try:
                if token_uid in token_contracts:
                    value = self.state.call_view(ContractId(token_uid), 'balance_of', nc_id_bytes)
                else:
                    value = self.state.get_balance(nc_id_bytes, token_uid)
            except Exception as e:
                logger.debug('balance lookup failed: %s: %r', token_uid_hex, e)
                balances[token_uid_hex] = NCValueErrorResponse(errmsg=repr(e))
                continue
            balances[token_uid_hex] = NCValueSuccessResponse(value=str(value))

        # Call view methods.
        calls: dict[str, Union[NCValueSuccessResponse, NCValueErrorResponse]] = {}
        for call_info in params.calls:
            try:
                method_name, method_args = parse_nc_method_call(blueprint_class, call_info)
                value = self.state.call_view(nc_id_bytes, method_name, *method_args)
                return_type = Method.from_callable(getattr(blueprint_class, method_name)).return_
                json_value = return_type.value_to_json(value)
            except Exception as e:
                logger.debug('view call failed: %s: %r', call_info, e)
                calls[call_info] = NCValueErrorResponse(errmsg=repr(e))
            else:
                calls[call_info] = NCValueSuccessResponse(value=json_value)

        response = NCStateResponse(
            success=True,
            nc_id=params.id,
            blueprint_name=blueprint_class.__name__,
            timestamp=self.state.get_current_timestamp(),
            balances=balances,
            calls=calls,
        )
        return response.json_dumpb()


class NCStateParams(QueryParams):
    id: str
    balances: list[str] = Field(alias='balances[]', default_factory=list)
    calls: list[str] = Field(alias='calls[]', default_factory=list)


class NCValueSuccessResponse(Response):
    value: Any


class NCValueErrorResponse(Response):
    errmsg: str


class NCStateResponse(Response):
    success: bool
    nc_id: str
    blueprint_name: str
    timestamp: int
    balances: dict[str, Union[NCValueSuccessResponse, NCValueErrorResponse]]
    calls: dict[str, Union[NCValueSuccessResponse, NCValueErrorResponse]]


def build_api_root(state: JournaledSimulator, api_prefix: str = API_PREFIX) -> Resource:
    """Return the root resource serving `/<api_prefix>/nano_contract/state`."""
    nano_contract = Resource()
    nano_contract.putChild(b'state', NanoContractStateResource(state))
    api = Resource()
    api.putChild(b'nano_contract', nano_contract)
    root = Resource()
    root.putChild(api_prefix.encode('utf-8'), api)
    return root
