"""
Certificate verification against a local HTTPS server with a self-signed certificate.
"""

import datetime
import ipaddress
import json
import os
import ssl
import tempfile
import threading
import unittest
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from gitlab_api.api_client import GitLabApiClient
from gitlab_api.config import TrustPolicy


TOKEN = "glpat-test-token"


def _write_self_signed_cert(directory):
    """Write a self-signed certificate for localhost/127.0.0.1, return (certfile, keyfile)."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    certfile = os.path.join(directory, "server.pem")
    keyfile = os.path.join(directory, "server.key")
    with open(certfile, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
    with open(keyfile, "wb") as f:
        f.write(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
    return certfile, keyfile


class _JsonHandler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        body = json.dumps({
            "path": self.path,
            "token": self.headers.get("PRIVATE-TOKEN"),
        }).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


class TestCertificateVerification(unittest.TestCase):
    """
    Toggle certificate verification on one client against a real TLS server.
    """

    @classmethod
    def setUpClass(cls):
        cls.tmpdir = tempfile.TemporaryDirectory()
        certfile, keyfile = _write_self_signed_cert(cls.tmpdir.name)

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile, keyfile)

        cls.server = ThreadingHTTPServer(("127.0.0.1", 0), _JsonHandler)
        cls.server.daemon_threads = True
        cls.server.socket = context.wrap_socket(cls.server.socket, server_side=True)
        cls.thread = threading.Thread(target=cls.server.serve_forever, daemon=True)
        cls.thread.start()

        cls.host_url = f"https://127.0.0.1:{cls.server.server_address[1]}/"

    @classmethod
    def tearDownClass(cls):
        cls.server.shutdown()
        cls.server.server_close()
        cls.thread.join(timeout=5)
        cls.tmpdir.cleanup()

    def _client(self, trust_policy=None):
        client = GitLabApiClient(self.host_url, TOKEN, trust_policy=trust_policy, timeout=5)
        self.addCleanup(client.close)
        return client

    def test_default_policy_rejects_self_signed(self):
        client = self._client()
        with self.assertRaises(requests.exceptions.SSLError):
            client.get(None, "projects")

    def test_insecure_policy_accepts_self_signed(self):
        client = self._client(TrustPolicy.insecure())
        response = client.get(None, "projects", 42)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["path"], "/api/v3/projects/42")
        self.assertEqual(response.json()["token"], TOKEN)

    def test_toggle_on_then_off_on_same_client(self):
        client = self._client()

        client.set_ignore_certificate_errors(True)
        first = client.get(None, "projects")
        self.assertEqual(first.status_code, 200)
        # Second request reuses the pooled connection
        second = client.get(None, "projects")
        self.assertEqual(second.status_code, 200)

        client.set_ignore_certificate_errors(False)
        with self.assertRaises(requests.exceptions.SSLError):
            client.get(None, "projects")

        client.set_ignore_certificate_errors(True)
        self.assertEqual(client.get(None, "projects").status_code, 200)

    def test_insecure_client_does_not_affect_other_client(self):
        insecure = self._client(TrustPolicy.insecure())
        secure = self._client()

        self.assertEqual(insecure.get(None, "projects").status_code, 200)
        with self.assertRaises(requests.exceptions.SSLError):
            secure.get(None, "projects")


if __name__ == '__main__':
    unittest.main()
