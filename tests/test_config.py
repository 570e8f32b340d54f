from config import Settings


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("OPENAI_API_KEY", "DATA_SOURCE", "PATIENT_COUNT", "BOOTSTRAP_ON_STARTUP", "CORS_ORIGINS"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.OPENAI_API_KEY is None
        assert settings.DATA_SOURCE == "generative"
        assert settings.PATIENT_COUNT == 15
        assert settings.BOOTSTRAP_ON_STARTUP is True
        assert settings.cors_origins == ["*"]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("DATA_SOURCE", "sample")
        monkeypatch.setenv("PATIENT_COUNT", "4")
        monkeypatch.setenv("BOOTSTRAP_ON_STARTUP", "false")
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")

        settings = Settings(_env_file=None)

        assert settings.OPENAI_API_KEY == "sk-env"
        assert settings.DATA_SOURCE == "sample"
        assert settings.PATIENT_COUNT == 4
        assert settings.BOOTSTRAP_ON_STARTUP is False
        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_reads_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DATA_SOURCE", raising=False)
        monkeypatch.delenv("PATIENT_COUNT", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("DATA_SOURCE=sample\nPATIENT_COUNT=7\nUNRELATED=1\n")

        settings = Settings(_env_file=env_file)

        assert settings.DATA_SOURCE == "sample"
        assert settings.PATIENT_COUNT == 7
