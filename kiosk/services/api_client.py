"""
Backend API Client
Thin GraphQL-over-HTTP client for the restaurant backend
"""

import logging
import requests

logger = logging.getLogger(__name__)


UPSERT_DAILY_CLOSE_RAW = """
mutation upsertDailyCloseRaw($deviceId: String!, $date: String!, $payload: JSON!) {
  upsertDailyCloseRaw(deviceId: $deviceId, date: $date, payload: $payload) {
    success
    date
    syncedAt
  }
}
"""

DAILY_CLOSE_OPERATORS = """
query DailyCloseOperators {
  dailyCloseOperators {
    userId
    name
    phone
    role
    pin
    active
    raw
  }
}
"""

VALIDATE_DAILY_CLOSE_OPERATOR = """
mutation ValidateDailyCloseOperator($phone: String!, $pin: String!) {
  validateDailyCloseOperator(phone: $phone, pin: $pin) {
    success
    message
    userId
    name
    phone
    role
  }
}
"""


class GraphQLRequestError(Exception):
    """
    A failed GraphQL request.

    Attributes:
        graphql_errors: list of error dicts returned by the server
        network_error: the underlying transport exception, if any
    """

    def __init__(self, message, graphql_errors=None, network_error=None):
        super().__init__(message)
        self.message = message
        self.graphql_errors = graphql_errors or []
        self.network_error = network_error


class BackendClient:
    """Client for the backend GraphQL endpoint"""

    def __init__(self, api_url, timeout_ms=15000, session=None):
        self.endpoint = api_url.rstrip('/') + '/graphql'
        self.health_url = api_url.rstrip('/') + '/health'
        self.timeout = timeout_ms / 1000
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(config['API_URL'], config.get('NETWORK_TIMEOUT_MS', 15000))

    def execute(self, query, variables=None):
        """
        Run a query or mutation

        Returns:
            dict: the `data` member of the response

        Raises:
            GraphQLRequestError: on transport failure, non-2xx status or GraphQL errors
        """
        try:
            response = self.session.post(
                self.endpoint,
                json={'query': query, 'variables': variables or {}},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise GraphQLRequestError(f"Network error: {e}", network_error=e) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        errors = body.get('errors') or []
        if errors:
            message = ' | '.join(str(error.get('message', '')) for error in errors)
            raise GraphQLRequestError(message, graphql_errors=errors)

        if response.status_code >= 400:
            raise GraphQLRequestError(f"HTTP {response.status_code} from {self.endpoint}")

        return body.get('data') or {}

    def is_reachable(self):
        """Check whether the backend answers its health endpoint"""
        try:
            response = self.session.get(self.health_url, timeout=self.timeout)
            return response.status_code == 200
        except requests.RequestException as e:
            logger.debug(f"Backend not reachable: {e}")
            return False

    def upsert_daily_close_raw(self, device_id, close_date, payload):
        data = self.execute(UPSERT_DAILY_CLOSE_RAW, {
            'deviceId': device_id,
            'date': close_date,
            'payload': payload,
        })
        result = data.get('upsertDailyCloseRaw') or {}
        if not result.get('success'):
            raise GraphQLRequestError(f"Backend rejected daily close {close_date}")
        return result

    def fetch_operators(self):
        data = self.execute(DAILY_CLOSE_OPERATORS)
        return data.get('dailyCloseOperators') or []

    def validate_operator(self, phone, pin):
        data = self.execute(VALIDATE_DAILY_CLOSE_OPERATOR, {'phone': phone, 'pin': pin})
        return data.get('validateDailyCloseOperator') or {}
