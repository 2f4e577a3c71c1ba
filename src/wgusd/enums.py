from enum import Enum


class LookupFailure(str, Enum):
    QUERY_FAILED = "query_failed"
    NO_RECORDS = "no_records"


class ConfigFailure(str, Enum):
    MALFORMED = "malformed"
    PORT_OUT_OF_RANGE = "port_out_of_range"
    EMPTY_HOST = "empty_host"


class ReconcileFailure(str, Enum):
    CLIENT_UNAVAILABLE = "client_unavailable"
    DEVICE_NOT_FOUND = "device_not_found"
    UNEXPECTED_PEER_COUNT = "unexpected_peer_count"
    ADDRESS_RESOLUTION_FAILED = "address_resolution_failed"
    APPLY_FAILED = "apply_failed"


class Outcome(str, Enum):
    NO_CHANGE = "no_change"
    UPDATED = "updated"


class EndpointSource(str, Enum):
    SRV = "srv"
    FALLBACK = "fallback"
