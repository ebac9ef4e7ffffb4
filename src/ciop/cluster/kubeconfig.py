# cluster/kubeconfig.py
# Connection settings for the cluster we deploy to. In-cluster service account
# credentials are preferred; otherwise the current kubeconfig context is used.
from __future__ import annotations

import base64
import os
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


class ClusterConfigError(Exception):
    """Raised when no usable cluster configuration can be found."""
    pass


@dataclass
class ClusterConfig:
    server: str
    token: Optional[str] = None
    ca_file: Optional[str] = None
    ca_data: Optional[str] = None          # PEM text
    client_cert_file: Optional[str] = None
    client_key_file: Optional[str] = None
    insecure: bool = False

    def ssl_context(self) -> Optional[ssl.SSLContext]:
        if not self.server.startswith("https"):
            return None
        ctx = ssl.create_default_context(cafile=self.ca_file, cadata=self.ca_data)
        if self.insecure:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        if self.client_cert_file:
            ctx.load_cert_chain(self.client_cert_file, self.client_key_file)
        return ctx


def in_cluster_config(sa_dir: Path = SERVICE_ACCOUNT_DIR) -> ClusterConfig:
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    port = os.environ.get("KUBERNETES_SERVICE_PORT")
    token_file = sa_dir / "token"
    if not host or not port or not token_file.exists():
        raise ClusterConfigError("not running inside a cluster")

    if ":" in host:  # IPv6
        host = f"[{host}]"
    ca_file = sa_dir / "ca.crt"
    return ClusterConfig(
        server=f"https://{host}:{port}",
        token=token_file.read_text().strip(),
        ca_file=str(ca_file) if ca_file.exists() else None,
    )


def _named(entries: list, name: str, what: str) -> Dict[str, Any]:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry.get(what) or {}
    raise ClusterConfigError(f"kubeconfig has no {what} named {name!r}")


def _resolve(base: Path, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    p = Path(value).expanduser()
    return str(p if p.is_absolute() else base / p)


def kubeconfig_config(path: Optional[str | Path] = None) -> ClusterConfig:
    """Load the current context from $KUBECONFIG or ~/.kube/config."""
    if path is None:
        env = os.environ.get("KUBECONFIG", "")
        path = env.split(os.pathsep)[0] if env else Path.home() / ".kube" / "config"
    kc_path = Path(path).expanduser()
    if not kc_path.exists():
        raise ClusterConfigError(f"kubeconfig not found: {kc_path}")

    data = yaml.safe_load(kc_path.read_text()) or {}
    current = data.get("current-context")
    if not current:
        raise ClusterConfigError(f"kubeconfig {kc_path} has no current-context")

    context = _named(data.get("contexts"), current, "context")
    cluster = _named(data.get("clusters"), context.get("cluster"), "cluster")
    user = _named(data.get("users"), context.get("user"), "user") if context.get("user") else {}

    server = cluster.get("server")
    if not server:
        raise ClusterConfigError(f"cluster {context.get('cluster')!r} has no server")

    ca_data = cluster.get("certificate-authority-data")
    base = kc_path.parent
    return ClusterConfig(
        server=server,
        token=user.get("token"),
        ca_file=_resolve(base, cluster.get("certificate-authority")),
        ca_data=base64.b64decode(ca_data).decode("utf-8") if ca_data else None,
        client_cert_file=_resolve(base, user.get("client-certificate")),
        client_key_file=_resolve(base, user.get("client-key")),
        insecure=bool(cluster.get("insecure-skip-tls-verify", False)),
    )


def load_cluster_config() -> ClusterConfig:
    """
    Prefer in-cluster configuration if possible, fall back to the
    default kubeconfig otherwise.
    """
    try:
        config = in_cluster_config()
    except ClusterConfigError:
        try:
            config = kubeconfig_config()
        except (OSError, yaml.YAMLError) as e:
            raise ClusterConfigError(f"could not load credentials from config: {e}") from e
        except (AttributeError, TypeError) as e:
            raise ClusterConfigError(f"malformed kubeconfig: {e}") from e

    # CA and client certificate files are only read here
    try:
        config.ssl_context()
    except OSError as e:
        raise ClusterConfigError(f"invalid TLS settings for {config.server}: {e}") from e
    return config
