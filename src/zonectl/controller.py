"""High-level orchestration for preview and push."""

from __future__ import annotations

import logging
import signal
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from types import FrameType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Tuple

from .credsfile import is_excluded_from_defaults
from .handsoff import configure_reporting
from .models import (
    Correction,
    DNSConfig,
    DomainConfig,
    ProviderConfig,
    ProviderInstance,
    ZonectlError,
)
from .nameservers import add_ns_records, determine_nameservers
from .notifications import Notifier, NullNotifier
from .printer import ConsolePrinter
from .provider_types import populate_provider_types
from .providers.base import Capability, ZoneCreator, ZoneDeleter, ZoneLister, call_with_deadline, deadline_for
from .providers.registry import REGISTRY, ProviderRegistry
from .report import ReportItem, gen_report_item, write_report
from .zonecache import ZoneCache
from .zonerecs import correct_zone_records

LOG = logging.getLogger("zonectl")

CONCURRENCY_MODES = ("concurrent", "none", "all")


def configure_logging(level: str) -> None:
    """Configure logging output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@dataclass
class RunOptions:
    """Knobs for one preview or push run."""

    push: bool = False
    interactive: bool = False
    no_populate: bool = False
    populate_on_preview: bool = False
    depopulate: bool = False
    expect_no_changes: bool = False
    full: bool = False
    domains: str = ""
    providers: str = ""
    report_path: Path | None = None
    cmode: str = "concurrent"
    cmax: int = 999
    provider_timeout: float | None = 300.0
    report_max: int = 5


@dataclass
class RunResult:
    """Outcome of a run."""

    total_corrections: int = 0
    any_errors: bool = False
    unexpected_changes: bool = False
    report_items: List[ReportItem] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 1 if self.any_errors or self.unexpected_changes else 0


def initialize_providers(
    cfg: DNSConfig,
    creds: Mapping[str, Dict[str, str]],
    registry: ProviderRegistry = REGISTRY,
) -> List[str]:
    """Resolve provider types, build drivers, and attach instances to every zone."""
    declared = {p.name for p in cfg.registrars}
    for dc in cfg.domains:
        if dc.registrar_name not in declared:
            cfg.registrars.append(ProviderConfig(name=dc.registrar_name))
            declared.add(dc.registrar_name)

    msgs = populate_provider_types(cfg, creds)

    registrars = {
        p.name: registry.create_registrar(p.type, creds.get(p.name, {})) for p in cfg.registrars
    }
    drivers = {
        p.name: registry.create_dns_provider(p.type, creds.get(p.name, {}), p.metadata) for p in cfg.dns_providers
    }
    registrar_types = {p.name: p.type for p in cfg.registrars}
    provider_types = {p.name: p.type for p in cfg.dns_providers}

    for dc in cfg.domains:
        dc.registrar_instance = ProviderInstance(
            name=dc.registrar_name,
            provider_type=registrar_types[dc.registrar_name],
            driver=registrars[dc.registrar_name],
            is_default=not is_excluded_from_defaults(creds.get(dc.registrar_name, {})),
        )
        dc.dns_provider_instances = [
            ProviderInstance(
                name=name,
                provider_type=provider_types[name],
                driver=drivers[name],
                is_default=not is_excluded_from_defaults(creds.get(name, {})),
                num_nameservers=count,
            )
            for name, count in dc.dns_provider_names.items()
        ]
    LOG.debug("Initialised %d registrars and %d DNS providers", len(registrars), len(drivers))
    return msgs


def _to_ascii(name: str) -> str:
    import dns.exception
    import dns.name

    try:
        return dns.name.from_unicode(name).to_text(omit_final_dot=True).lower()
    except (dns.exception.DNSException, UnicodeError, ValueError):
        return name.lower()


def _name_matches(pattern: str, zone: str) -> bool:
    if pattern == "*":
        return True
    zone = _to_ascii(zone)
    if pattern.startswith("*.") and len(pattern) > 2:
        return zone.endswith("." + _to_ascii(pattern[2:]))
    return _to_ascii(pattern) == zone


def domain_matches(dc: DomainConfig, filter_text: str) -> bool:
    """Apply a ``--domains`` filter to one zone.

    ``name`` and ``name!`` select the untagged variant, ``name!tag`` that tag,
    ``name!*`` every variant. ``*`` and ``*.suffix`` glob on the name.
    """
    filter_text = filter_text.strip()
    if filter_text in ("", "all"):
        return True
    for item in (part.strip() for part in filter_text.split(",")):
        if not item:
            continue
        name, bang, tag = item.partition("!")
        if not _name_matches(name, dc.name):
            continue
        if not bang:
            if name == "*" or name.startswith("*.") or dc.tag == "":
                return True
        elif tag == "*" or tag == dc.tag:
            return True
    return False


def which_zones_to_process(domains: Iterable[DomainConfig], filter_text: str) -> List[DomainConfig]:
    return [dc for dc in domains if domain_matches(dc, filter_text)]


def provider_selected(instance: ProviderInstance, filter_text: str) -> bool:
    """Apply a ``--providers`` filter: ``all``, empty (defaults only) or a list."""
    filter_text = filter_text.strip()
    if filter_text == "all":
        return True
    if filter_text == "":
        return instance.is_default
    return instance.name in {part.strip() for part in filter_text.split(",")}


def all_concur(dc: DomainConfig, registry: ProviderRegistry = REGISTRY) -> bool:
    """True when the registrar and every DNS provider allow concurrent planning."""
    instances = list(dc.dns_provider_instances)
    if dc.registrar_instance is not None:
        instances.append(dc.registrar_instance)
    return all(registry.has_capability(i.provider_type, Capability.CAN_CONCUR) for i in instances)


def split_concurrent(
    domains: List[DomainConfig], mode: str, registry: ProviderRegistry = REGISTRY
) -> Tuple[List[DomainConfig], List[DomainConfig]]:
    """Return ``(serial, concurrent)`` zones for a ``--cmode`` value."""
    if mode == "none":
        return list(domains), []
    if mode == "all":
        return [], list(domains)
    serial = [dc for dc in domains if not all_concur(dc, registry)]
    concurrent = [dc for dc in domains if all_concur(dc, registry)]
    return serial, concurrent


class PreviewPush:
    """Plans corrections for every selected zone, then prints or runs them."""

    def __init__(
        self,
        cfg: DNSConfig,
        options: RunOptions,
        printer: ConsolePrinter | None = None,
        notifier: Notifier | None = None,
        registry: ProviderRegistry = REGISTRY,
        zone_cache: ZoneCache | None = None,
    ):
        if options.cmode not in CONCURRENCY_MODES:
            raise ZonectlError(f"--cmode must be one of {', '.join(CONCURRENCY_MODES)}, got {options.cmode!r}")
        self.cfg = cfg
        self.options = options
        self.printer = printer or ConsolePrinter(verbose=options.full)
        self.notifier = notifier or NullNotifier()
        self.registry = registry
        self.zone_cache = zone_cache or ZoneCache(timeout=options.provider_timeout)
        self._errors: Dict[Tuple[str, str], Exception] = {}
        self._errors_lock = threading.Lock()
        self._stop = threading.Event()
        self._skip_rest = False

    # Phase helpers -------------------------------------------------------

    def _record_error(self, dc: DomainConfig, provider: str, exc: Exception) -> None:
        if isinstance(exc, ZonectlError):
            LOG.error("%s: %s: %s", dc.unique_name, provider, exc)
        else:
            LOG.exception("%s: %s: unexpected failure", dc.unique_name, provider)
        with self._errors_lock:
            self._errors[(dc.unique_name, provider)] = exc

    def _error_for(self, dc: DomainConfig, provider: str) -> Exception | None:
        with self._errors_lock:
            return self._errors.get((dc.unique_name, provider))

    def _selected(self, instance: ProviderInstance) -> bool:
        return provider_selected(instance, self.options.providers)

    def _run_action(self, correction: Correction, driver: Any) -> None:
        """Run one correction under the deadline of the driver that produced it."""
        call_with_deadline(correction.action, timeout=deadline_for(driver, self.options.provider_timeout))

    def _run_zones(self, zones: List[DomainConfig], task: Callable[[DomainConfig], None]) -> None:
        serial, concurrent = split_concurrent(zones, self.options.cmode, self.registry)
        with ThreadPoolExecutor(max_workers=max(1, self.options.cmax), thread_name_prefix="zonectl-zone") as pool:
            futures = [pool.submit(task, dc) for dc in concurrent]
            for dc in serial:
                task(dc)
            for future in futures:
                future.result()

    # Populate ------------------------------------------------------------

    def _populate_zone(self, dc: DomainConfig) -> None:
        for instance in dc.dns_provider_instances:
            if not self._selected(instance) or not isinstance(instance.driver, ZoneLister):
                continue
            try:
                if self.zone_cache.has_zone(instance, dc.name):
                    continue
            except Exception as exc:  # noqa: BLE001
                self._record_error(dc, instance.name, exc)
                continue
            if isinstance(instance.driver, ZoneCreator):
                correction = Correction(
                    msg=f'Ensuring zone "{dc.name}" exists in "{instance.name}"',
                    action=partial(instance.driver.ensure_zone_exists, dc.name, dict(dc.metadata)),
                    provider=instance.name,
                    domain=dc.name,
                )
            else:
                correction = Correction.message(
                    f'Zone "{dc.name}" does not exist. Can not create because "{instance.name}" '
                    "does not implement zone creation"
                )
            dc.store_populate_corrections(instance.name, [correction])

    def populate(self, zones: List[DomainConfig]) -> int:
        """Create zones missing at their providers; returns the count of creation corrections."""
        self._run_zones(zones, self._populate_zone)
        run_them = self.options.push or self.options.populate_on_preview
        count = 0
        for dc in zones:
            for instance in dc.dns_provider_instances:
                corrections = dc.get_populate_corrections(instance.name)
                if not corrections:
                    continue
                self.printer.start_domain(dc.unique_name)
                for index, correction in enumerate(corrections):
                    if correction.is_report:
                        self.printer.print_report(index, correction)
                        continue
                    count += 1
                    self.printer.print_correction(index, correction)
                    if not run_them:
                        continue
                    try:
                        self._run_action(correction, instance.driver)
                    except Exception as exc:  # noqa: BLE001
                        self.printer.end_correction(exc)
                        self._record_error(dc, instance.name, exc)
                    else:
                        self.printer.end_correction(None)
                    self.zone_cache.invalidate(instance.name)
        return count

    # Gather --------------------------------------------------------------

    def _plan_zone(self, dc: DomainConfig) -> None:
        started = time.monotonic()
        timeout = self.options.provider_timeout
        try:
            dc.nameservers = determine_nameservers(dc, timeout=timeout)
            add_ns_records(dc)
        except Exception as exc:  # noqa: BLE001
            self._record_error(dc, dc.registrar_name, exc)

        for instance in dc.dns_provider_instances:
            if not self._selected(instance):
                continue
            try:
                reports, corrections, count = correct_zone_records(instance, dc, timeout, self.registry)
            except Exception as exc:  # noqa: BLE001
                self._record_error(dc, instance.name, exc)
                continue
            dc.store_corrections(instance.name, reports + corrections)
            dc.increment_change_count(instance.name, count)

        registrar = dc.registrar_instance
        if registrar is not None and self._selected(registrar) and self._error_for(dc, registrar.name) is None:
            if not dc.nameservers and dc.metadata.get("no_ns", "").lower() != "true":
                dc.store_corrections(
                    registrar.name,
                    [
                        Correction.message(
                            f'Skipping registrar "{registrar.name}": No nameservers declared for domain '
                            f'"{dc.name}". Add {{no_ns:\'true\'}} to force'
                        )
                    ],
                )
            else:
                try:
                    corrections = call_with_deadline(
                        registrar.driver.get_registrar_corrections, dc, timeout=deadline_for(registrar.driver, timeout)
                    )
                except Exception as exc:  # noqa: BLE001
                    self._record_error(dc, registrar.name, exc)
                else:
                    dc.store_corrections(registrar.name, corrections)
                    dc.increment_change_count(registrar.name, sum(1 for c in corrections if not c.is_report))
        LOG.debug("%s: planned in %.2fs", dc.unique_name, time.monotonic() - started)

    def gather(self, zones: List[DomainConfig]) -> None:
        """Plan corrections for every zone; zones may run concurrently."""
        self._run_zones(zones, self._plan_zone)

    # Act -----------------------------------------------------------------

    def _print_or_run(
        self, domain: str, provider: str, corrections: List[Correction], driver: Any
    ) -> Tuple[int, bool]:
        """Print reports, then print (and on push run) each action. Returns (actions, any_errors)."""
        reports = [c for c in corrections if c.is_report]
        actions = [c for c in corrections if not c.is_report]
        preview = not self.options.push
        for index, report in enumerate(reports):
            self.printer.print_report(index, report)
            self.notifier.notify(domain, provider, report.msg, None, preview)

        any_errors = False
        for index, correction in enumerate(actions):
            if self._stop.is_set():
                break
            self.printer.print_correction(index, correction)
            error = None
            if self.options.push:
                if self._skip_rest:
                    continue
                if self.options.interactive:
                    answer = self.printer.prompt_to_run()
                    if answer == "s":
                        self._skip_rest = True
                        continue
                    if answer != "y":
                        continue
                try:
                    self._run_action(correction, driver)
                except Exception as exc:  # noqa: BLE001
                    error = exc
                    any_errors = True
                    LOG.debug("%s[%s]: correction failed", domain, provider, exc_info=True)
                self.printer.end_correction(error)
            self.notifier.notify(domain, provider, correction.msg, error, preview)
        return len(actions), any_errors

    def _handle_sigint(self, signum: int, frame: FrameType | None) -> None:
        self.printer.write("Interrupted; finishing the current correction and stopping.")
        self._stop.set()

    def act(self, zones: List[DomainConfig], result: RunResult) -> None:
        """Print or execute the planned corrections, zone by zone in input order."""
        previous = None
        if threading.current_thread() is threading.main_thread():
            previous = signal.signal(signal.SIGINT, self._handle_sigint)
        try:
            for dc in zones:
                if self._stop.is_set():
                    break
                self._act_on_zone(dc, result)
        finally:
            if previous is not None:
                signal.signal(signal.SIGINT, previous)

    def _act_on_zone(self, dc: DomainConfig, result: RunResult) -> None:
        self.printer.start_domain(dc.unique_name)
        for instance in dc.dns_provider_instances:
            skip = not self._selected(instance)
            self.printer.start_dns_provider(instance.name, skip)
            if skip:
                continue
            self._act_on_provider(dc, instance.name, instance.driver, result, registrar=False)

        registrar = dc.registrar_instance
        if registrar is not None:
            skip = not self._selected(registrar)
            self.printer.start_registrar(registrar.name, skip)
            if not skip:
                self._act_on_provider(dc, registrar.name, registrar.driver, result, registrar=True)

    def _act_on_provider(
        self, dc: DomainConfig, name: str, driver: Any, result: RunResult, registrar: bool
    ) -> None:
        error = self._error_for(dc, name)
        if error is not None:
            self.printer.error(f"{dc.unique_name} ({name}): {error}")
            self.notifier.notify(dc.unique_name, name, str(error), error, not self.options.push)
            result.any_errors = True
            return
        corrections = dc.get_corrections(name)
        if registrar:
            item = gen_report_item(dc.unique_name, corrections, registrar=name)
        else:
            item = gen_report_item(dc.unique_name, corrections, provider=name)
        result.report_items.append(item)
        _, failed = self._print_or_run(dc.unique_name, name, corrections, driver)
        result.total_corrections += dc.get_change_count(name)
        result.any_errors = result.any_errors or failed

    # Depopulate ----------------------------------------------------------

    def depopulate(self, result: RunResult) -> None:
        """Offer to delete zones that exist at a provider but not in the configuration."""
        declared = {dc.name for dc in self.cfg.domains}
        seen = set()
        for dc in self.cfg.domains:
            for instance in dc.dns_provider_instances:
                if instance.name in seen or not self._selected(instance):
                    continue
                seen.add(instance.name)
                if not isinstance(instance.driver, ZoneLister):
                    continue
                try:
                    zones = self.zone_cache.zone_list(instance)
                except Exception as exc:  # noqa: BLE001
                    self.printer.error(f"{instance.name}: cannot list zones: {exc}")
                    result.any_errors = True
                    continue
                for zone in sorted(set(zones) - declared):
                    if isinstance(instance.driver, ZoneDeleter):
                        correction = Correction(
                            msg=f'Deleting zone "{zone}" from "{instance.name}"',
                            action=partial(instance.driver.delete_zone, zone),
                            provider=instance.name,
                            domain=zone,
                        )
                    else:
                        correction = Correction.message(
                            f'Zone "{zone}" exists at "{instance.name}" but is not in the configuration; '
                            f'"{instance.name}" can not delete zones'
                        )
                    self.printer.start_domain(zone)
                    count, failed = self._print_or_run(zone, instance.name, [correction], instance.driver)
                    result.total_corrections += count
                    result.any_errors = result.any_errors or failed

    # Entry point ---------------------------------------------------------

    def run(self) -> RunResult:
        configure_reporting(self.options.report_max, self.options.full)
        zones = which_zones_to_process(self.cfg.domains, self.options.domains)
        LOG.info("Processing %d of %d zones", len(zones), len(self.cfg.domains))
        result = RunResult()

        if not self.options.no_populate:
            result.total_corrections += self.populate(zones)
        self.gather(zones)
        self.act(zones, result)
        if self.options.depopulate and not self._stop.is_set():
            self.depopulate(result)

        with self._errors_lock:
            if self._errors:
                result.any_errors = True
        self.notifier.done()
        write_report(self.options.report_path, result.report_items)
        self.printer.write(f"Done. {result.total_corrections} corrections.")
        if self.options.expect_no_changes and result.total_corrections > 0:
            result.unexpected_changes = True
        return result


def run_preview_push(
    cfg: DNSConfig,
    options: RunOptions,
    printer: ConsolePrinter | None = None,
    notifier: Notifier | None = None,
    registry: ProviderRegistry = REGISTRY,
) -> RunResult:
    """Run one preview or push over an initialised configuration."""
    return PreviewPush(cfg, options, printer=printer, notifier=notifier, registry=registry).run()
