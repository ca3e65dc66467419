from __future__ import annotations

import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from PIL import Image

from recipe_post.cli import main


def _run(argv: list[str]) -> tuple[int, str, str]:
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main(argv)
    return code, out.getvalue(), err.getvalue()


class TestCLI(unittest.TestCase):
    def test_generate_offline_writes_post(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            out_path = Path(td) / "post.json"
            log_path = Path(td) / "events.jsonl"
            code, stdout, stderr = _run(
                [
                    "generate",
                    "--offline",
                    "--text",
                    "Рецепт №12: салат",
                    "--out",
                    str(out_path),
                    "--log",
                    str(log_path),
                ]
            )

            self.assertEqual(code, 0, msg=stderr)
            post = json.loads(out_path.read_text(encoding="utf-8"))
            events = [json.loads(line)["event"] for line in log_path.read_text(encoding="utf-8").splitlines()]

        self.assertEqual(post["Номер"], "12")
        self.assertEqual(json.loads(stdout), post)
        self.assertEqual(events, ["generate_completed"])

    def test_generate_from_image_offline(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            img_path = Path(td) / "page.jpg"
            Image.new("RGB", (2000, 1500), (240, 240, 240)).save(img_path, format="JPEG")

            code, stdout, stderr = _run(["generate", "--offline", "--image", str(img_path)])

        self.assertEqual(code, 0, msg=stderr)
        self.assertEqual(json.loads(stdout)["Номер"], "7")

    def test_extract_rejects_unsupported_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            img_path = Path(td) / "page.gif"
            img_path.write_bytes(b"GIF89a")

            code, _, stderr = _run(["extract", "--offline", "--image", str(img_path)])

        self.assertEqual(code, 3)
        self.assertIn("Unsupported image file", stderr)

    def test_empty_text_is_validation_error(self) -> None:
        code, _, stderr = _run(["generate", "--offline", "--text", "   "])
        self.assertEqual(code, 2)
        self.assertIn("empty", stderr)

    def test_missing_credential_is_config_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text("genai:\n  api_key_env: RECIPE_POST_TEST_MISSING_KEY\n", encoding="utf-8")

            code, _, stderr = _run(["generate", "--config", str(cfg_path), "--text", "Рецепт №1"])

        self.assertEqual(code, 2)
        self.assertIn("RECIPE_POST_TEST_MISSING_KEY", stderr)

    def test_export_rejects_invalid_post_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            post_path = Path(td) / "post.json"
            post_path.write_text(json.dumps({"post_content": {"Номер": "1"}}), encoding="utf-8")

            code, _, stderr = _run(["export", "--post", str(post_path)])

        self.assertEqual(code, 2)
        self.assertIn("Invalid post JSON", stderr)


class TestCLISmoke(unittest.TestCase):
    def test_module_entrypoint_offline(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]

        env = dict(os.environ)
        existing_pp = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)
        env["PYTHONIOENCODING"] = "utf-8"

        proc = subprocess.run(
            [
                sys.executable,
                "-m",
                "recipe_post",
                "generate",
                "--offline",
                "--text",
                "Рецепт №3: гречка с овощами",
            ],
            cwd=repo_root,
            env=env,
            capture_output=True,
            text=True,
            encoding="utf-8",
        )

        self.assertEqual(proc.returncode, 0, msg=proc.stderr)
        post = json.loads(proc.stdout)
        self.assertEqual(post["Номер"], "3")
        self.assertIn("#ВкусноПростоПолезно", post["Хэштеги"])


if __name__ == "__main__":
    unittest.main()
