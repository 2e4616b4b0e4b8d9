"""
End-to-end tests for the interactive orchestrator.
"""
import json
import os
import tempfile
import unittest
from unittest.mock import patch

from cryptography import x509

import cert_tool
from cert_tool import CertTool, DONE, main
from errors import FileSystemError, UserInputError
from helpers import RecordingSink, make_config, scripted


def read_bytes(path):
    with open(path, "rb") as f:
        return f.read()


class TestCertTool(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.base = self.temp_dir.name
        self.config = make_config()

    def path(self, *parts):
        return os.path.join(self.base, *parts)

    def run_tool(self, answers, secrets=()):
        sink = RecordingSink()
        tool = CertTool(self.config, self.base, sink, ask=scripted(answers),
                        ask_secret=scripted(secrets))
        ca = tool.run()
        return tool, ca, sink

    def test_localhost_with_one_entity(self):
        tool, ca, sink = self.run_tool(["", "y", "service1", "n"])

        self.assertEqual(tool.state, DONE)
        self.assertTrue(os.path.exists(self.path("ca.localhost.key")))
        self.assertTrue(os.path.exists(self.path("ca.localhost.crt")))
        self.assertEqual(sorted(os.listdir(self.path("certificates", "service1"))),
                         ["service1.crt", "service1.key", "service1.pfx"])
        self.assertFalse(os.path.exists(self.path("ca.localhost.srl")))

        self.assertIn("CA localhost", sink.passwords)
        self.assertIn("service1", sink.passwords)
        self.assertNotEqual(sink.passwords["CA localhost"], sink.passwords["service1"])

    def test_distinct_passwords_per_entity(self):
        tool, ca, sink = self.run_tool(["dev", "y", "one", "y", "two", "n"])
        self.assertEqual(len(tool.issued), 2)
        self.assertNotEqual(sink.passwords["one"], sink.passwords["two"])

    def test_no_entities(self):
        tool, ca, sink = self.run_tool(["dev", ""])
        self.assertEqual(tool.issued, [])
        self.assertFalse(os.path.exists(self.path("certificates")))

    def test_uppercase_does_not_continue_loop(self):
        tool, ca, sink = self.run_tool(["dev", "Y"])
        self.assertEqual(tool.issued, [])

    def test_invalid_ca_name_reprompts(self):
        self.run_tool(["../evil", "a/b", "good", "n"])
        self.assertTrue(os.path.exists(self.path("ca.good.key")))
        self.assertFalse(os.path.exists(os.path.join(os.path.dirname(self.base), "ca.evil.key")))

    def test_invalid_entity_cn_reprompts(self):
        tool, ca, sink = self.run_tool(["dev", "y", "../svc", "svc", "n"])
        self.assertEqual([os.path.basename(p.directory) for p in tool.issued], ["svc"])

    def test_empty_entity_cn(self):
        with self.assertRaises(UserInputError):
            self.run_tool(["dev", "y", "   "])
        self.assertFalse(os.path.exists(self.path("certificates")))

    def test_overwrite_declined_reuses_ca(self):
        _, first_ca, first_sink = self.run_tool(["localhost", "n"])
        key_before = read_bytes(first_ca.key_path)
        cert_before = read_bytes(first_ca.cert_path)

        tool, ca, sink = self.run_tool(["localhost", "n", "y", "svc", "n"],
                                       secrets=[first_sink.passwords["CA localhost"]])

        self.assertEqual(read_bytes(first_ca.key_path), key_before)
        self.assertEqual(read_bytes(first_ca.cert_path), cert_before)
        self.assertNotIn("CA localhost", sink.passwords)
        cert = x509.load_pem_x509_certificate(read_bytes(tool.issued[0].cert))
        cert.verify_directly_issued_by(first_ca.cert)

    def test_overwrite_declined_wrong_passwords(self):
        _, first_ca, _ = self.run_tool(["localhost", "n"])
        cert_before = read_bytes(first_ca.cert_path)
        with self.assertRaises(UserInputError):
            self.run_tool(["localhost", "n"], secrets=["a", "b", "c"])
        self.assertEqual(read_bytes(first_ca.cert_path), cert_before)

    def test_overwrite_accepted(self):
        _, first_ca, _ = self.run_tool(["localhost", "n"])
        cert_before = read_bytes(first_ca.cert_path)
        _, ca, sink = self.run_tool(["localhost", "Y", "n"])
        self.assertNotEqual(read_bytes(ca.cert_path), cert_before)
        self.assertIn("CA localhost", sink.passwords)

    def test_reissue_same_entity_stops_run(self):
        with self.assertRaises(FileSystemError):
            self.run_tool(["dev", "y", "svc", "y", "svc"])


class TestMain(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.base = self.temp_dir.name

    def test_success(self):
        with patch("builtins.input", side_effect=["localhost", "y", "service1", "n"]):
            code = main(["--no-banner", "-w", self.base, "--days", "30"])
        self.assertEqual(code, 0)
        self.assertTrue(os.path.exists(os.path.join(self.base, "certificates", "service1",
                                                    "service1.pfx")))

    def test_password_file(self):
        password_file = os.path.join(self.base, "passwords.txt")
        with patch("builtins.input", side_effect=["localhost", "y", "service1", "n"]):
            code = main(["--no-banner", "-w", self.base, "--password-file", password_file])
        self.assertEqual(code, 0)
        with open(password_file) as f:
            labels = [line.split(":")[0] for line in f.read().splitlines()]
        self.assertEqual(labels, ["CA localhost", "service1"])

    def test_user_input_error_exit_code(self):
        with patch("builtins.input", side_effect=["localhost", "y", ""]):
            code = main(["--no-banner", "-w", self.base])
        self.assertEqual(code, 1)

    def test_bad_cli_override(self):
        self.assertEqual(main(["--no-banner", "-w", self.base, "--days", "0"]), 1)

    def test_bad_config_file(self):
        config_path = os.path.join(self.base, "config.json")
        with open(config_path, "w") as f:
            json.dump({"nonsense": True}, f)
        self.assertEqual(main(["--no-banner", "-w", self.base, "-c", config_path]), 1)

    def test_missing_workdir(self):
        missing = os.path.join(self.base, "missing")
        self.assertEqual(main(["--no-banner", "-w", missing]), 1)

    def test_unreadable_ca_key_exit_code(self):
        with patch("builtins.input", side_effect=["localhost", "n"]):
            self.assertEqual(main(["--no-banner", "-w", self.base]), 0)
        key_path = os.path.join(self.base, "ca.localhost.key")
        os.remove(key_path)
        os.mkdir(key_path)
        with patch("builtins.input", side_effect=["localhost", "n"]), \
                patch("getpass.getpass", return_value="irrelevant"):
            self.assertEqual(main(["--no-banner", "-w", self.base]), 1)

    def test_unreadable_serial_file_exit_code(self):
        os.mkdir(os.path.join(self.base, "ca.localhost.srl"))
        with patch("builtins.input", side_effect=["localhost", "y", "service1"]):
            self.assertEqual(main(["--no-banner", "-w", self.base]), 1)
        self.assertFalse(os.path.exists(os.path.join(self.base, "certificates", "service1",
                                                     "service1.crt")))

    def test_interrupt(self):
        with patch.object(cert_tool.CertTool, "run", side_effect=KeyboardInterrupt):
            self.assertEqual(main(["--no-banner", "-w", self.base]), 130)

    def test_input_closed(self):
        with patch("builtins.input", side_effect=EOFError):
            self.assertEqual(main(["--no-banner", "-w", self.base]), 1)


if __name__ == '__main__':
    unittest.main()
