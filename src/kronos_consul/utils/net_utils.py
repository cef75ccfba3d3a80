import socket
from urllib.parse import urlsplit


class NetUtils:
    @staticmethod
    def get_local_ip() -> str:
        """Best effort lookup of the address other hosts reach us on."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            # no packets are sent for a UDP connect
            sock.connect(("10.255.255.255", 1))
            return sock.getsockname()[0]
        except OSError:
            return "127.0.0.1"
        finally:
            sock.close()

    @staticmethod
    def split_url(url: str) -> tuple[str, int | None]:
        """Return the host and port of ``url`` (port is None when absent)."""
        parts = urlsplit(url)
        return parts.hostname or "", parts.port
