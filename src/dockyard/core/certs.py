"""Certificate authority for machine TLS.

dockyard keeps one local CA per machine store. The CA signs:

- one client certificate, used by the docker client to talk to every
  machine, and
- one server certificate per machine, bound to its IP address.

Keys are RSA and written as PKCS#1 PEM ("RSA PRIVATE KEY") with mode
0600. A single empty host (``[""]``) selects a client certificate.
"""

from __future__ import annotations

import datetime
import ipaddress
import os
import secrets
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from dockyard.core.exceptions import CertificateError
from dockyard.utils.logging import get_logger
from dockyard.utils.paths import copy_file, get_username

logger = get_logger("certs")

DEFAULT_KEY_BITS = 2048
VALIDITY_DAYS = 1080
BACKDATE = datetime.timedelta(minutes=5)
SERIAL_LIMIT = 1 << 128


def _new_key(bits: int) -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def _key_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _validity() -> tuple[datetime.datetime, datetime.datetime]:
    not_before = (datetime.datetime.now(datetime.timezone.utc) - BACKDATE).replace(
        second=0, microsecond=0
    )
    return not_before, not_before + datetime.timedelta(days=VALIDITY_DAYS)


def _serial_number() -> int:
    return secrets.randbelow(SERIAL_LIMIT - 1) + 1


def _subject(org: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, org)])


def _san_entries(hosts: list[str]) -> list[x509.GeneralName]:
    entries: list[x509.GeneralName] = []
    for host in hosts:
        try:
            entries.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            entries.append(x509.DNSName(host))
    return entries


def _write_pair(cert_path: Path, cert_pem: bytes, key_path: Path, key_pem: bytes) -> None:
    cert_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    cert_path.write_bytes(cert_pem)
    key_path.write_bytes(key_pem)
    key_path.chmod(0o600)


def _read_ca(
    ca_cert_path: str | Path, ca_key_path: str | Path
) -> tuple[x509.Certificate, rsa.RSAPrivateKey]:
    try:
        ca_cert = x509.load_pem_x509_certificate(Path(ca_cert_path).read_bytes())
        ca_key = serialization.load_pem_private_key(Path(ca_key_path).read_bytes(), password=None)
    except (OSError, ValueError) as e:
        raise CertificateError(
            f"Unable to read CA material: {e}",
            details={"ca_cert": str(ca_cert_path), "ca_key": str(ca_key_path)},
        ) from e
    if not isinstance(ca_key, rsa.RSAPrivateKey):
        raise CertificateError("CA key is not an RSA key", details={"ca_key": str(ca_key_path)})
    return ca_cert, ca_key


def generate_ca_certificate(
    cert_path: str | Path,
    key_path: str | Path,
    org: str,
    bits: int = DEFAULT_KEY_BITS,
) -> None:
    """Generate a self-signed CA certificate and key.

    Args:
        cert_path: Where to write the CA certificate.
        key_path: Where to write the CA private key (mode 0600).
        org: Organization name for the subject.
        bits: RSA key size.

    Raises:
        CertificateError: If either file already exists.
    """
    cert_path, key_path = Path(cert_path), Path(key_path)
    for path in (cert_path, key_path):
        if path.exists():
            raise CertificateError(
                "Refusing to overwrite existing CA material", details={"path": str(path)}
            )

    key = _new_key(bits)
    not_before, not_after = _validity()
    subject = _subject(org)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(key, hashes.SHA256())
    )

    _write_pair(cert_path, cert.public_bytes(serialization.Encoding.PEM), key_path, _key_pem(key))
    logger.info(f"Generated CA certificate {cert_path}")


def issue_cert(
    hosts: list[str],
    ca_cert_path: str | Path,
    ca_key_path: str | Path,
    org: str,
    bits: int = DEFAULT_KEY_BITS,
) -> tuple[bytes, bytes]:
    """Issue a certificate signed by the CA.

    Args:
        hosts: IP addresses and DNS names for the SAN, or ``[""]`` for a
            client certificate.
        ca_cert_path: CA certificate.
        ca_key_path: CA private key.
        org: Organization name for the subject.
        bits: RSA key size.

    Returns:
        Tuple of (certificate PEM, private key PEM).

    Raises:
        CertificateError: If the CA material cannot be read.
    """
    ca_cert, ca_key = _read_ca(ca_cert_path, ca_key_path)
    key = _new_key(bits)
    not_before, not_after = _validity()
    is_client = len(hosts) == 1 and hosts[0] == ""

    builder = (
        x509.CertificateBuilder()
        .subject_name(_subject(org))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=not is_client,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    )

    if is_client:
        builder = builder.add_extension(
            x509.ExtendedKeyUsage(
                [ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]
            ),
            critical=False,
        )
    elif hosts:
        builder = builder.add_extension(
            x509.SubjectAlternativeName(_san_entries(hosts)), critical=False
        )

    cert = builder.sign(ca_key, hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM), _key_pem(key)


def generate_cert(
    hosts: list[str],
    cert_path: str | Path,
    key_path: str | Path,
    ca_cert_path: str | Path,
    ca_key_path: str | Path,
    org: str,
    bits: int = DEFAULT_KEY_BITS,
) -> None:
    """Issue a certificate and write it and its key to disk.

    See :func:`issue_cert` for the arguments; the key file gets mode 0600.
    """
    cert_pem, key_pem = issue_cert(hosts, ca_cert_path, ca_key_path, org, bits)
    _write_pair(Path(cert_path), cert_pem, Path(key_path), key_pem)
    logger.debug(f"Generated certificate {cert_path} for {hosts or ['client']}")


def verify_certificate(cert_path: str | Path, ca_cert_path: str | Path) -> bool:
    """Check that a certificate was issued by a CA and is currently valid.

    Args:
        cert_path: Certificate to check.
        ca_cert_path: The CA certificate.

    Returns:
        True if the issuer, signature and validity window all check out.
    """
    cert = x509.load_pem_x509_certificate(Path(cert_path).read_bytes())
    ca_cert = x509.load_pem_x509_certificate(Path(ca_cert_path).read_bytes())

    try:
        cert.verify_directly_issued_by(ca_cert)
    except (ValueError, TypeError, InvalidSignature) as e:
        logger.debug(f"{cert_path} not issued by {ca_cert_path}: {e}")
        return False

    now = datetime.datetime.now(datetime.timezone.utc)
    return cert.not_valid_before_utc <= now <= cert.not_valid_after_utc


def setup_machine_certificates(
    ca_cert_path: str | Path,
    ca_key_path: str | Path,
    client_cert_path: str | Path,
    client_key_path: str | Path,
    machine_dir: str | Path | None = None,
    org: str | None = None,
    bits: int = DEFAULT_KEY_BITS,
) -> None:
    """Make sure the CA and the client certificate exist.

    Safe to call repeatedly: existing material is left untouched. The CA
    certificate is also copied to ``ca.pem`` beside the client certificate
    so the client directory is usable as ``DOCKER_CERT_PATH``.

    Args:
        ca_cert_path: CA certificate path.
        ca_key_path: CA private key path.
        client_cert_path: Client certificate path.
        client_key_path: Client private key path.
        machine_dir: Machine store directory, created with mode 0700.
        org: Organization name; defaults to the local user name.
        bits: RSA key size.

    Raises:
        CertificateError: If only one half of the CA pair exists, or the
            client key exists without its certificate.
    """
    ca_cert_path, ca_key_path = Path(ca_cert_path), Path(ca_key_path)
    client_cert_path, client_key_path = Path(client_cert_path), Path(client_key_path)
    org = org or get_username()

    if machine_dir is not None:
        Path(machine_dir).mkdir(mode=0o700, parents=True, exist_ok=True)

    if not ca_cert_path.exists():
        if ca_key_path.exists():
            raise CertificateError(
                "The CA key already exists but its certificate is missing. "
                "Remove the key or restore the certificate.",
                details={"ca_key": str(ca_key_path)},
            )
        logger.info("Creating CA")
        generate_ca_certificate(ca_cert_path, ca_key_path, org, bits)
    elif not ca_key_path.exists():
        raise CertificateError(
            "The CA certificate exists but its key is missing. "
            "Remove the certificate or restore the key.",
            details={"ca_cert": str(ca_cert_path)},
        )

    if not client_cert_path.exists():
        client_dir = client_cert_path.parent
        client_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        if client_key_path.exists():
            raise CertificateError(
                "The client key already exists but its certificate is missing. "
                "Remove the key or restore the certificate.",
                details={"client_key": str(client_key_path)},
            )
        logger.info("Creating client certificate")
        generate_cert([""], client_cert_path, client_key_path, ca_cert_path, ca_key_path, org, bits)

        client_ca = client_dir / "ca.pem"
        if not client_ca.exists() or not os.path.samefile(client_ca, ca_cert_path):
            copy_file(ca_cert_path, client_ca)
