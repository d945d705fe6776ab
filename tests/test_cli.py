import json
from unittest.mock import patch

from research.cli import build_parser, main, options_from_args


def test_options_from_args():
    args = build_parser().parse_args([
        "--image-url", "https://img/ref.jpg",
        "--query", "carlu poster",
        "--variation", "america's answer",
        "--variation", "carlu 1942",
        "--seller-id", "1",
        "--no-web",
        "--parse-with-ai",
        "--title", "America's Answer! Production",
        "--artist", "Jean Carlu",
        "--verify",
        "--threshold", "60",
    ])

    options = options_from_args(args)

    assert options.image_url == "https://img/ref.jpg"
    assert options.query_variations == ["america's answer", "carlu 1942"]
    assert options.seller_ids == [1]
    assert options.include_web_search is False
    assert options.parse_with_ai is True
    assert options.item_context.artist == "Jean Carlu"
    assert options.enable_visual_verification is True
    assert options.visual_verification_threshold == 60


def test_options_without_title_have_no_context():
    options = options_from_args(build_parser().parse_args(["--query", "carlu poster"]))
    assert options.item_context is None
    assert options.include_web_search is True


def test_status_command(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("SERPER_API_KEY", raising=False)
    sellers = tmp_path / "sellers.json"
    sellers.write_text(json.dumps([{"id": 1, "name": "Heritage Auctions", "website": "ha.com", "reliability_tier": 1}]))
    env_file = tmp_path / "empty.env"
    env_file.write_text("")

    with patch("research.cli.setup_logging"):
        code = main(["--status", "--sellers", str(sellers), "--env-file", str(env_file)])

    assert code == 0
    status = json.loads(capsys.readouterr().out)
    assert status["configured"] is False
    assert status["provider"] == "serper"


def test_missing_seller_file_exits_with_error(tmp_path, capsys):
    with patch("research.cli.setup_logging"):
        code = main(["--status", "--sellers", str(tmp_path / "nope.json"), "--env-file", str(tmp_path / "x.env")])

    assert code == 2
    assert "Could not read seller file" in capsys.readouterr().err
