"""
Operator Cache
Offline-capable cache of the employees allowed to perform a daily close (phone + PIN)
"""

import copy
import hashlib
import json
import logging

from kiosk.utils.helpers import iso_now, normalize_phone

logger = logging.getLogger(__name__)

STORAGE_KEY = 'MOJARRERIA_OPERATOR_CACHE_V1'
CACHE_VERSION = 1

BOOTSTRAP_SOURCE = 'bootstrap_local'

# Fields that define an operator's identity for fingerprinting
FINGERPRINT_FIELDS = ('userId', 'name', 'phone', 'role', 'pin', 'active')


class OperatorAuthError(Exception):
    """Operator could not be authorized; the message is shown to the user"""


def sort_operators(operators):
    return sorted(operators, key=lambda operator: operator['userId'])


def to_fingerprint(operators):
    """
    Stable digest of an operator list

    Order-independent: operators are sorted by userId and reduced to their
    identity fields before hashing.
    """
    stable = [
        {field: operator.get(field) for field in FINGERPRINT_FIELDS}
        for operator in sort_operators(operators)
    ]
    canonical = json.dumps(stable, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def to_cached_operator(remote, cached_at):
    return {
        'userId': str(remote['userId']),
        'name': str(remote.get('name') or ''),
        'phone': str(remote.get('phone') or ''),
        'role': remote.get('role'),
        'pin': str(remote.get('pin') or ''),
        'active': bool(remote.get('active')),
        'cachedAt': cached_at,
        'raw': remote.get('raw'),
    }


def bootstrap_operator_from_config(config):
    return {
        'userId': config['BOOTSTRAP_OPERATOR_USER_ID'],
        'name': config['BOOTSTRAP_OPERATOR_NAME'],
        'phone': config['BOOTSTRAP_OPERATOR_PHONE'],
        'role': 'ADMIN',
        'pin': config['BOOTSTRAP_OPERATOR_PIN'],
        'active': True,
        'cachedAt': '',
        'raw': {'source': BOOTSTRAP_SOURCE},
    }


class OperatorCache:
    """Versioned operator cache document in the device key-value storage"""

    def __init__(self, storage, bootstrap_operator):
        self.storage = storage
        self.bootstrap_operator = bootstrap_operator

    def _bootstrap_payload(self):
        cached_at = iso_now()
        operators = [{**copy.deepcopy(self.bootstrap_operator), 'cachedAt': cached_at}]
        return {
            'version': CACHE_VERSION,
            'updatedAt': cached_at,
            'lastFetchedAt': '',
            'fingerprint': to_fingerprint(operators),
            'operators': operators,
        }

    def read_cache(self):
        """
        Current cache payload

        Falls back to a single bootstrap operator when nothing is stored,
        the document is corrupt, or it holds no operators.
        """
        parsed = self.storage.get_json(STORAGE_KEY)
        if not isinstance(parsed, dict):
            return self._bootstrap_payload()

        operators = parsed.get('operators')
        if not isinstance(operators, list) or not operators:
            return self._bootstrap_payload()
        if not all(isinstance(operator, dict) and operator.get('userId') for operator in operators):
            logger.warning("Operator cache holds malformed entries, falling back to bootstrap operator")
            return self._bootstrap_payload()

        return {
            'version': CACHE_VERSION,
            'updatedAt': str(parsed.get('updatedAt') or ''),
            'lastFetchedAt': str(parsed.get('lastFetchedAt') or ''),
            'fingerprint': str(parsed.get('fingerprint') or ''),
            'operators': sort_operators(operators),
        }

    def write_cache(self, payload):
        self.storage.set_json(STORAGE_KEY, payload)

    def get_cached_operators(self):
        return self.read_cache()['operators']

    def get_summary(self):
        cache = self.read_cache()
        return {
            'count': len(cache['operators']),
            'updatedAt': cache['updatedAt'],
            'lastFetchedAt': cache['lastFetchedAt'],
            'fingerprint': cache['fingerprint'],
        }

    def has_cached_operators(self):
        """True if at least one cached operator is active"""
        return any(operator.get('active') for operator in self.read_cache()['operators'])

    def find_operator_for_login(self, phone, pin):
        """
        Local authorization fallback

        Returns:
            dict: first active operator whose digits-only phone and exact PIN match, or None
        """
        wanted_phone = normalize_phone(phone)
        for operator in self.read_cache()['operators']:
            if not operator.get('active'):
                continue
            if normalize_phone(operator.get('phone')) == wanted_phone and operator.get('pin') == pin:
                return operator
        return None

    def upsert_operator(self, operator):
        """Cache an online-validated operator so it can log in offline later"""
        cache = self.read_cache()
        cached_at = operator.get('cachedAt') or iso_now()
        next_operator = {**operator, 'cachedAt': cached_at}

        operators = [item for item in cache['operators'] if item['userId'] != next_operator['userId']]
        operators.append(next_operator)
        operators = sort_operators(operators)

        self.write_cache({
            'version': CACHE_VERSION,
            'updatedAt': cached_at,
            'lastFetchedAt': cached_at,
            'fingerprint': to_fingerprint(operators),
            'operators': operators,
        })
        return next_operator

    def sync_operators(self, client):
        """
        Refresh the cache from the backend operator list

        When the fetched list has the same fingerprint as the cache and no
        bootstrap entry remains, only lastFetchedAt is refreshed. Otherwise
        the whole cached set is replaced.

        Returns:
            dict: operators, changed, updatedAt, lastFetchedAt
        """
        cache = self.read_cache()
        fetched_at = iso_now()
        remote_operators = client.fetch_operators()

        operators = sort_operators([to_cached_operator(remote, fetched_at) for remote in remote_operators])
        next_fingerprint = to_fingerprint(operators)
        has_bootstrap_seed = any(
            isinstance(operator.get('raw'), dict) and operator['raw'].get('source') == BOOTSTRAP_SOURCE
            for operator in cache['operators']
        )

        if cache['fingerprint'] == next_fingerprint and not has_bootstrap_seed:
            self.write_cache({**cache, 'lastFetchedAt': fetched_at})
            return {
                'operators': cache['operators'],
                'changed': False,
                'updatedAt': cache['updatedAt'],
                'lastFetchedAt': fetched_at,
            }

        self.write_cache({
            'version': CACHE_VERSION,
            'updatedAt': fetched_at,
            'lastFetchedAt': fetched_at,
            'fingerprint': next_fingerprint,
            'operators': operators,
        })
        logger.info(f"Operator cache replaced with {len(operators)} operators")
        return {
            'operators': operators,
            'changed': True,
            'updatedAt': fetched_at,
            'lastFetchedAt': fetched_at,
        }


def authenticate_operator(phone, pin, cache, client=None, online=False):
    """
    Resolve who is performing the close

    Online first: the backend validates phone + PIN and a success is cached
    for later offline use. On failure or when offline, the local cache is
    consulted.

    Returns:
        dict: userId, name, phone, role, source ('online' or 'offline_cache'), raw

    Raises:
        OperatorAuthError: with a message suitable for the operator
    """
    phone = str(phone or '').strip()
    pin = str(pin or '').strip()
    if len(phone) < 8 or len(pin) != 4:
        raise OperatorAuthError("Ingresa un teléfono válido y un PIN de 4 dígitos.")

    if not cache.has_cached_operators():
        raise OperatorAuthError("Sin usuarios de cierre. Conecta internet o contacta soporte.")

    rejection_message = None
    if online and client is not None:
        try:
            result = client.validate_operator(phone, pin)
        except Exception as e:
            logger.info(f"Online operator validation failed, falling back to cache: {e}")
            result = {}

        if result.get('success') and result.get('userId') and result.get('name') and result.get('phone'):
            raw = {'validation': result}
            cache.upsert_operator({
                'userId': result['userId'],
                'name': result['name'],
                'phone': result['phone'],
                'role': result.get('role'),
                'pin': pin,
                'active': True,
                'raw': raw,
            })
            return {
                'userId': result['userId'],
                'name': result['name'],
                'phone': result['phone'],
                'role': result.get('role'),
                'source': 'online',
                'raw': raw,
            }
        rejection_message = result.get('message')

    cached = cache.find_operator_for_login(phone, pin)
    if cached:
        return {
            'userId': cached['userId'],
            'name': cached['name'],
            'phone': cached['phone'],
            'role': cached.get('role'),
            'source': 'offline_cache',
            'raw': cached.get('raw'),
        }

    raise OperatorAuthError(
        rejection_message or "No se pudo validar. Revisa teléfono/PIN o conecta internet."
    )
