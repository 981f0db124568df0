import json

import pytest

from certificate import main, parse_args


@pytest.fixture
def workspace(tmp_path, template_bytes):
    template = tmp_path / "template.pdf"
    template.write_bytes(template_bytes)
    profiles = tmp_path / "profiles.json"
    profiles.write_text(
        json.dumps(
            [
                {
                    "lastname": "Dupont",
                    "firstname": "Jean",
                    "birthday": "01/01/1980",
                    "placeofbirth": "Paris",
                    "address": "1 rue A",
                    "zipcode": "75000",
                    "city": "Paris",
                },
                {
                    "lastname": "Martin",
                    "firstname": "Claire",
                    "birthday": "12/06/1975",
                    "placeofbirth": "Lyon",
                    "address": "4 place Bellecour",
                    "zipcode": "69002",
                    "city": "Lyon",
                },
            ]
        ),
        encoding="utf-8",
    )
    cfg = tmp_path / "config.json"
    cfg.write_text(json.dumps({"template_path": str(template)}), encoding="utf-8")
    return tmp_path


def test_parse_args():
    args = parse_args(["--time", "12h00", "--date", "01/04/2020", "travail-achats", "profiles.json"])
    assert args.reasons == ["travail", "achats"]
    assert args.time == "12h00"
    assert args.date == "01/04/2020"


@pytest.mark.parametrize(
    "argv",
    [
        ["--time", "12:00", "travail", "p.json"],
        ["--date", "2020-04-01", "travail", "p.json"],
        ["travail,achats", "p.json"],
    ],
)
def test_parse_args_rejects_bad_formats(argv):
    with pytest.raises(SystemExit) as excinfo:
        parse_args(argv)
    assert excinfo.value.code == 2


def test_generates_one_file_per_profile(workspace, capsys):
    out = workspace / "out"
    code = main(
        [
            "--config", str(workspace / "config.json"),
            "--output", str(out),
            "--date", "01/04/2020",
            "--time", "12h00",
            "travail-achats",
            str(workspace / "profiles.json"),
        ]
    )
    assert code == 0
    assert sorted(p.name for p in out.iterdir()) == [
        "certificate-Dupont-12h00-travail, achats.pdf",
        "certificate-Martin-12h00-travail, achats.pdf",
    ]
    assert "Generated 2/2" in capsys.readouterr().out


def test_unknown_reason_fails_every_profile(workspace):
    out = workspace / "out"
    code = main(
        ["--config", str(workspace / "config.json"), "--output", str(out), "vacances", str(workspace / "profiles.json")]
    )
    assert code == 1
    assert not out.exists() or list(out.iterdir()) == []


def test_missing_profiles_is_fatal(workspace):
    out = workspace / "out"
    code = main(
        ["--config", str(workspace / "config.json"), "--output", str(out), "travail", str(workspace / "missing.json")]
    )
    assert code == 1
    assert not out.exists()


def test_missing_template_is_fatal(workspace):
    code = main(
        [
            "--config", str(workspace / "config.json"),
            "--template", str(workspace / "nope.pdf"),
            "--output", str(workspace / "out"),
            "travail",
            str(workspace / "profiles.json"),
        ]
    )
    assert code == 1
