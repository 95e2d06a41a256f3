"""Loopback port binding and the port discovery file.

The daemon binds 127.0.0.1 only, then advertises the bound port in a
``.codesense-port`` file in the project root so editor clients started in the
same project can find it.
"""

import logging
import socket
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

PORT_FILE_NAME = ".codesense-port"
LOOPBACK_HOST = "127.0.0.1"


def is_valid_port(port: Optional[int]) -> bool:
    return isinstance(port, int) and not isinstance(port, bool) and 0 < port < 65536


def read_port_file(project_root: Path) -> Optional[int]:
    """Return the port advertised in a project's discovery file, if any."""
    try:
        return int((project_root / PORT_FILE_NAME).read_text().strip())
    except (OSError, ValueError):
        return None


class PortCoordinator:
    """Binds the listener socket and manages the discovery file.

    Args:
        project_root: Directory receiving the discovery file
        port: Explicit port to bind (ephemeral when None or invalid)
        write_port_file: Publish the bound port in the discovery file
    """

    def __init__(
        self,
        project_root: Path,
        port: Optional[int] = None,
        write_port_file: bool = True,
    ):
        self.project_root = project_root
        self.requested_port = port
        self.write_port_file = write_port_file
        self.port: Optional[int] = None
        self.sock: Optional[socket.socket] = None
        self.port_file: Optional[Path] = None

    def bind(self) -> socket.socket:
        """Bind a TCP socket on the loopback interface.

        Raises:
            OSError: If the port cannot be bound
        """
        port = self.requested_port
        if port is not None and not is_valid_port(port):
            logger.warning(f"Ignoring invalid port {port}, using an ephemeral port")
            port = None

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((LOOPBACK_HOST, port or 0))
            # Clients that read the port file early queue until serving starts.
            sock.listen(socket.SOMAXCONN)
        except OSError:
            sock.close()
            raise

        self.sock = sock
        self.port = sock.getsockname()[1]
        logger.info(f"Bound {LOOPBACK_HOST}:{self.port}")
        return sock

    def publish(self) -> None:
        """Write the bound port to the discovery file, unless disabled."""
        if not self.write_port_file:
            return
        if self.port is None:
            raise RuntimeError("Cannot publish a port before binding")
        port_file = self.project_root / PORT_FILE_NAME
        port_file.write_text(str(self.port))
        self.port_file = port_file
        logger.debug(f"Wrote port {self.port} to {port_file}")

    def release(self) -> None:
        """Remove the discovery file if it still advertises this daemon.

        A newer daemon may have replaced the file with its own port; in that
        case the file is left alone. Cleanup failures are ignored.
        """
        if self.port_file is None:
            return
        try:
            if self.port_file.read_text().strip() == str(self.port):
                self.port_file.unlink()
                logger.debug(f"Removed {self.port_file}")
        except OSError:
            pass
        finally:
            self.port_file = None

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None
