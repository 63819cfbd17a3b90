"""Address parsing, proxy selection and TCP dialing."""

from __future__ import annotations

import ipaddress
import random
import socket
import urllib.request
from urllib.parse import urlsplit

from pcsrequester.tcpcache import TCP_ADDR_CACHE, TCPAddr


class ProxyAddrEmptyError(ValueError):
    """No proxy address was configured."""

    def __init__(self) -> None:
        super().__init__("proxy addr is empty")


_local_tcp_addrs: list[TCPAddr] = []
_proxy_addr = ""


def set_local_tcp_addr_list(*ips: str) -> None:
    """Set the local addresses outgoing connections may bind to; invalid ones are ignored."""
    global _local_tcp_addrs
    addrs = []
    for ip in ips:
        try:
            parsed = ipaddress.ip_address(ip)
        except ValueError:
            continue
        addrs.append(TCPAddr(str(parsed)))
    _local_tcp_addrs = addrs


def get_local_tcp_addr() -> TCPAddr | None:
    """Pick one of the configured local addresses at random, or None."""
    if not _local_tcp_addrs:
        return None
    return random.choice(_local_tcp_addrs)


def set_global_proxy(proxy_addr: str) -> None:
    global _proxy_addr
    _proxy_addr = proxy_addr


def split_host_port(address: str) -> tuple[str, str]:
    """Split "host:port" or "[host]:port" into host and port."""
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"address {address}: missing ']' in address")
        if end + 1 == len(address):
            raise ValueError(f"address {address}: missing port in address")
        if end + 1 != address.rfind(":"):
            if address[end + 1] == ":":
                raise ValueError(f"address {address}: too many colons in address")
            raise ValueError(f"address {address}: missing port in address")
        host = address[1:end]
        if "[" in address[1:] or "]" in address[end + 1:]:
            raise ValueError(f"address {address}: unexpected bracket in address")
        return host, address[end + 2:]

    index = address.rfind(":")
    if index < 0:
        raise ValueError(f"address {address}: missing port in address")
    host = address[:index]
    if ":" in host:
        raise ValueError(f"address {address}: too many colons in address")
    if "[" in address or "]" in address:
        raise ValueError(f"address {address}: unexpected bracket in address")
    return host, address[index + 1:]


def join_host_port(host: str, port: str | int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def check_proxy_addr(proxy_addr: str) -> str:
    """Return a proxy URL for ``proxy_addr``; a bare "host:port" is taken as an HTTP proxy."""
    if not proxy_addr:
        raise ProxyAddrEmptyError()
    try:
        host, port = split_host_port(proxy_addr)
    except ValueError:
        urlsplit(proxy_addr)
        return proxy_addr
    return "http://" + join_host_port(host, port)


def environment_proxy(url: str) -> str | None:
    """Proxy for ``url`` taken from the *_PROXY environment variables."""
    parts = urlsplit(url)
    proxies = urllib.request.getproxies_environment()
    host = parts.hostname
    if host and urllib.request.proxy_bypass_environment(host, proxies):
        return None
    return proxies.get(parts.scheme.lower())


def proxy_for(url: str) -> str | None:
    """The global proxy if one is set and valid, else the environment's."""
    try:
        return check_proxy_addr(_proxy_addr)
    except ValueError:
        return environment_proxy(url)


def get_server_name(address: str) -> str:
    try:
        host, _ = split_host_port(address)
    except ValueError:
        return address
    return host


def resolve_tcp(address: str) -> TCPAddr:
    """Resolve "host:port" to its first address."""
    host, port = split_host_port(address)
    infos = socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    if not infos:
        raise OSError(f"no addresses found for {host}")
    number = int(port)
    ip = str(infos[0][4][0])
    ip, _, zone = ip.partition("%")
    return TCPAddr(ip, number, zone)


def dial(address: str, timeout: float | None = 30.0) -> socket.socket:
    """Open a TCP connection, using and filling the shared address cache."""
    addr = TCP_ADDR_CACHE.get(address)
    if addr is None:
        addr = resolve_tcp(address)
        TCP_ADDR_CACHE.set(address, addr)
    local = get_local_tcp_addr()
    source = (local.ip, 0) if local is not None else None
    ip = f"{addr.ip}%{addr.zone}" if addr.zone else addr.ip
    return socket.create_connection((ip, addr.port), timeout=timeout, source_address=source)