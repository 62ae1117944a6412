"""Provider interfaces and capability declarations."""

from __future__ import annotations

import abc
import concurrent.futures
import enum
from typing import Any, Callable, Dict, List, Tuple

from ..models import Correction, DomainConfig, Nameserver, ProviderTimeoutError, Record

DEFAULT_TIMEOUT = 300.0


class Capability(enum.Enum):
    """Features a driver declares when it registers."""

    CAN_USE_ALIAS = "CanUseAlias"
    CAN_USE_CAA = "CanUseCAA"
    CAN_USE_DS = "CanUseDS"
    CAN_USE_DS_FOR_CHILDREN = "CanUseDSForChildren"
    CAN_USE_DNSKEY = "CanUseDNSKEY"
    CAN_USE_HTTPS = "CanUseHTTPS"
    CAN_USE_LOC = "CanUseLOC"
    CAN_USE_NAPTR = "CanUseNAPTR"
    CAN_USE_PTR = "CanUsePTR"
    CAN_USE_SRV = "CanUseSRV"
    CAN_USE_SSHFP = "CanUseSSHFP"
    CAN_USE_SVCB = "CanUseSVCB"
    CAN_USE_TLSA = "CanUseTLSA"
    CAN_USE_TXT_MULTI = "CanUseTXTMulti"
    CANT_USE_NOPURGE = "CantUseNOPURGE"
    CAN_CONCUR = "CanConcur"
    CAN_GET_ZONES = "CanGetZones"
    DOC_DUAL_HOST = "DocDualHost"
    DOC_CREATE_DOMAINS = "DocCreateDomains"
    DOC_OFFICIALLY_SUPPORTED = "DocOfficiallySupported"


# Record types that need a capability before a provider may be given them.
RTYPE_CAPABILITIES: Dict[str, Capability] = {
    "ALIAS": Capability.CAN_USE_ALIAS,
    "CAA": Capability.CAN_USE_CAA,
    "DNSKEY": Capability.CAN_USE_DNSKEY,
    "HTTPS": Capability.CAN_USE_HTTPS,
    "LOC": Capability.CAN_USE_LOC,
    "NAPTR": Capability.CAN_USE_NAPTR,
    "PTR": Capability.CAN_USE_PTR,
    "SRV": Capability.CAN_USE_SRV,
    "SSHFP": Capability.CAN_USE_SSHFP,
    "SVCB": Capability.CAN_USE_SVCB,
    "TLSA": Capability.CAN_USE_TLSA,
}


class DNSProvider(abc.ABC):
    """A DNS service provider driver."""

    # Seconds allowed for each fetch; None means use the run's default.
    call_timeout: float | None = None

    @abc.abstractmethod
    def get_nameservers(self, domain: str) -> List[Nameserver]:
        """Return the nameservers the provider assigns to ``domain``."""

    @abc.abstractmethod
    def get_zone_records(self, domain: str, metadata: Dict[str, str]) -> List[Record]:
        """Return the records currently at the provider."""

    @abc.abstractmethod
    def get_zone_records_corrections(
        self, dc: DomainConfig, existing: List[Record]
    ) -> Tuple[List[Correction], int]:
        """Return corrections turning ``existing`` into ``dc.records`` and the actionable count.

        ``dc`` is a private copy that the driver may mutate.
        """

    def compare_extra(self, record: Record) -> str:
        """Extra text compared alongside a record's data; empty by default."""
        return ""


class Registrar(abc.ABC):
    """A domain registrar driver."""

    call_timeout: float | None = None

    @abc.abstractmethod
    def get_registrar_corrections(self, dc: DomainConfig) -> List[Correction]:
        """Return corrections that bring the delegation in line with ``dc.nameservers``."""


class ZoneLister(abc.ABC):
    """Mixin for drivers that can enumerate their zones."""

    @abc.abstractmethod
    def list_zones(self) -> List[str]:
        """Return every zone name the account holds."""


class ZoneCreator(abc.ABC):
    """Mixin for drivers that can create a zone."""

    @abc.abstractmethod
    def ensure_zone_exists(self, domain: str, metadata: Dict[str, str]) -> None:
        """Create ``domain`` at the provider unless it already exists."""


class ZoneDeleter(abc.ABC):
    """Mixin for drivers that can delete a zone."""

    @abc.abstractmethod
    def delete_zone(self, domain: str) -> None:
        """Remove ``domain`` from the provider."""


def call_with_deadline(fn: Callable[..., Any], *args: Any, timeout: float | None = DEFAULT_TIMEOUT, **kwargs: Any) -> Any:
    """Run ``fn`` and raise ProviderTimeoutError if it does not return in time.

    The worker thread is abandoned on timeout; the driver call may still
    complete in the background.
    """
    if timeout is None or timeout <= 0:
        return fn(*args, **kwargs)
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="zonectl-call")
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as exc:
        name = getattr(fn, "__qualname__", repr(fn))
        raise ProviderTimeoutError(f"{name} did not finish within {timeout:g}s") from exc
    finally:
        executor.shutdown(wait=False)


def deadline_for(driver: Any, default: float | None) -> float | None:
    """Return the driver's own per-call deadline, or ``default`` when it sets none."""
    own = getattr(driver, "call_timeout", None)
    return own if own is not None else default
