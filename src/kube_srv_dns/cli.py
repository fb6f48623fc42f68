#!/usr/bin/env python3
"""kube-srv-dns - Kubernetes NodePort services as Route53 SRV records

Publishes every port of an annotated NodePort service as an SRV record so the
service can be discovered by name from outside the cluster:

    metadata:
      annotations:
        external-dns.alpha.kubernetes.io/hostname: svc.example.com
    spec:
      type: NodePort
      ports:
        - name: http
          protocol: TCP
          nodePort: 31080

    _http._tcp.svc.example.com.  1800  IN  SRV  0 10 31080 svc.example.com.

Environment variables:

    Kubernetes:
        KUBECONFIG             Path to a kubeconfig file. When unset, in-cluster
                               configuration is tried first, then ~/.kube/config.
        WATCH_NAMESPACE        Namespace to watch (default: all namespaces)
        HOSTNAME_ANNOTATION    Annotation holding the base hostname
                               (default: external-dns.alpha.kubernetes.io/hostname)

    Route53:
        AWS_*                  Credentials and region, resolved by boto3
        RECORD_TTL             TTL of managed SRV records (default: 1800)

    Runtime:
        SYNC_MODE              "once" (single full sync) or "watch" (default: watch)
        RESYNC_INTERVAL_SECONDS
                               Full resync after this many idle seconds in watch
                               mode; 0 disables (default: 0)
        DRY_RUN                Log changes without submitting them (default: false)
        CONTINUE_ON_ZONE_ERROR Keep submitting to other zones after one zone's
                               change batch fails (default: false)
        LOG_LEVEL              DEBUG, INFO, WARNING, ERROR (default: INFO)
        CONFIG_PATH            Optional YAML config file
                               (default: /config/kube-srv-dns.yaml)
                               Example config file:
                                 zones:
                                   - example.com
                                 exclude_hostnames:
                                   - "*.staging.example.com"

    Hostname exclusions:
        SRV_DNS_EXCLUDE_HOSTNAMES  Comma-separated patterns; services whose
                                   hostname matches are neither published nor
                                   deleted. Supports three formats:
                                     - Exact hostname: "svc.example.com"
                                     - Wildcard (fnmatch-style): "*.internal.*"
                                     - Regex (prefix with ~): "~^dev-\\d+\\."
"""

from __future__ import annotations

import logging
import os
import signal
import sys
from typing import List

import boto3
from botocore.exceptions import BotoCoreError
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from .cluster import KubernetesServiceSource
from .records import DEFAULT_TTL, HOSTNAME_ANNOTATION
from .reconciler import ChangeApplier, ChangeSubmissionError
from .syncer import SRVRecordSyncer
from .utils import _parse_bool, _parse_exclude_patterns, load_config_file
from .zones import DNSProviderError, Route53DNSProvider, ZoneIndex

# =============================================================================
# Configuration
# =============================================================================

# Kubernetes configuration
KUBECONFIG = os.getenv("KUBECONFIG", "").strip()
WATCH_NAMESPACE = os.getenv("WATCH_NAMESPACE", "").strip()
HOSTNAME_ANNOTATION_KEY = os.getenv("HOSTNAME_ANNOTATION", HOSTNAME_ANNOTATION).strip()

# Route53 configuration
RECORD_TTL = int(os.getenv("RECORD_TTL", str(DEFAULT_TTL)))

# Runtime configuration
SYNC_MODE = os.getenv("SYNC_MODE", "watch").lower().strip()
RESYNC_INTERVAL_SECONDS = int(os.getenv("RESYNC_INTERVAL_SECONDS", "0"))
DRY_RUN = _parse_bool(os.getenv("DRY_RUN"), default=False)
CONTINUE_ON_ZONE_ERROR = _parse_bool(os.getenv("CONTINUE_ON_ZONE_ERROR"), default=False)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CONFIG_PATH = os.getenv("CONFIG_PATH", "/config/kube-srv-dns.yaml")

# Exclusions
SRV_DNS_EXCLUDE_HOSTNAMES = os.getenv("SRV_DNS_EXCLUDE_HOSTNAMES", "")

# =============================================================================
# Logging Setup
# =============================================================================

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# =============================================================================
# Provider Registry
# =============================================================================


def create_dns_provider() -> Route53DNSProvider:
    """Factory function for the Route53 provider."""
    return Route53DNSProvider(boto3.client("route53"))


def create_service_source() -> KubernetesServiceSource:
    """Factory function for the Kubernetes service source."""
    if KUBECONFIG:
        config.load_kube_config(config_file=KUBECONFIG)
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
    return KubernetesServiceSource(client.CoreV1Api(), namespace=WATCH_NAMESPACE)


# =============================================================================
# Main
# =============================================================================


def validate_config() -> bool:
    """Validate configuration."""
    errors: List[str] = []

    if SYNC_MODE not in ("once", "watch"):
        errors.append(f"Invalid SYNC_MODE: {SYNC_MODE}. Use 'once' or 'watch'")
    if RECORD_TTL <= 0:
        errors.append(f"RECORD_TTL must be positive, got {RECORD_TTL}")
    if RESYNC_INTERVAL_SECONDS < 0:
        errors.append(f"RESYNC_INTERVAL_SECONDS must not be negative, got {RESYNC_INTERVAL_SECONDS}")
    if not HOSTNAME_ANNOTATION_KEY:
        errors.append("HOSTNAME_ANNOTATION must not be empty")

    if errors:
        for error in errors:
            logger.error(error)
        return False

    return True


def install_signal_handlers(syncer: SRVRecordSyncer) -> None:
    def _handle(signum, _frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down after the current pass")
        syncer.request_shutdown()

    for name in ("SIGTERM", "SIGINT", "SIGQUIT"):
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, _handle)


def main():
    """Main entry point."""
    logger.info("kube-srv-dns: kubernetes -> route53")

    if not validate_config():
        logger.error("Configuration validation failed")
        sys.exit(1)

    file_config = load_config_file(CONFIG_PATH)
    zone_filter = file_config.get("zones", [])
    exclude_patterns = _parse_exclude_patterns(SRV_DNS_EXCLUDE_HOSTNAMES)
    exclude_patterns += _parse_exclude_patterns(file_config.get("exclude_hostnames", []))

    try:
        dns_provider = create_dns_provider()
        service_source = create_service_source()
    except (BotoCoreError, config.ConfigException) as e:
        logger.error(f"Failed to create clients: {e}")
        sys.exit(1)

    logger.info(f"DNS Provider: {dns_provider.name}")
    logger.info(f"Namespace: {WATCH_NAMESPACE or '<all>'}")
    logger.info(f"Hostname annotation: {HOSTNAME_ANNOTATION_KEY}")
    logger.info(f"Sync mode: {SYNC_MODE}")
    if zone_filter:
        logger.info(f"Managed zones: {', '.join(zone_filter)}")
    if exclude_patterns:
        logger.info(f"Hostname exclusions: {len(exclude_patterns)} pattern(s) configured")
    if DRY_RUN:
        logger.info("DRY RUN MODE - no changes will be submitted")

    if not dns_provider.test_connection():
        logger.error(f"Cannot connect to {dns_provider.name}. Exiting.")
        sys.exit(1)

    syncer = SRVRecordSyncer(
        service_source=service_source,
        zone_index=ZoneIndex(dns_provider, zone_filter=zone_filter),
        applier=ChangeApplier(
            dns_provider,
            ttl=RECORD_TTL,
            dry_run=DRY_RUN,
            continue_on_error=CONTINUE_ON_ZONE_ERROR,
        ),
        annotation=HOSTNAME_ANNOTATION_KEY,
        exclude_patterns=exclude_patterns,
        resync_interval=RESYNC_INTERVAL_SECONDS,
    )

    try:
        if SYNC_MODE == "once":
            syncer.sync_all()
            return

        install_signal_handlers(syncer)
        syncer.run()
        logger.info("Shut down")
    except (DNSProviderError, ChangeSubmissionError, ApiException) as e:
        logger.error(f"Sync failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
