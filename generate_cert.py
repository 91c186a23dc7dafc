"""
Writes a self-signed certificate and key for the local TLS listener.

    python generate_cert.py --host localhost --host 127.0.0.1

The key is ECDSA on P-256, which the listener's curve policy accepts.
"""
import argparse
import ipaddress
import os
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from transport import CERT_FILE, KEY_FILE

VALIDITY = timedelta(days=365)


def _subject_alt_names(hosts):
    names = []
    for host in hosts:
        try:
            names.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            names.append(x509.DNSName(host))
    return x509.SubjectAlternativeName(names)


def generate_self_signed(hosts, cert_file=CERT_FILE, key_file=KEY_FILE):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "snippetbox")])
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + VALIDITY)
        .add_extension(_subject_alt_names(hosts), critical=False)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )

    for path in (cert_file, key_file):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    with open(cert_file, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
    with open(key_file, "wb") as f:
        f.write(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
    os.chmod(key_file, 0o600)
    return cert_file, key_file


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate a self-signed TLS certificate")
    parser.add_argument("--host", action="append", default=None, help="DNS name or IP (repeatable)")
    parser.add_argument("--cert", default=CERT_FILE)
    parser.add_argument("--key", default=KEY_FILE)
    args = parser.parse_args(argv)

    cert, key = generate_self_signed(args.host or ["localhost"], args.cert, args.key)
    print(f"wrote {cert} and {key}")


if __name__ == '__main__':
    main()
