"""Tests for configuration validation."""

from unittest.mock import patch

import pytest

from prompt_refinery.config import Config


class TestConfigDefaults:

    def test_pipeline_thresholds(self):
        assert 0.0 <= Config.MIN_CONFIDENCE_SCORE <= 1.0
        assert Config.MIN_PROMPT_LENGTH <= Config.MAX_PROMPT_LENGTH
        assert 'application/pdf' in Config.ALLOWED_DOC_TYPES

    def test_timeouts_are_positive(self):
        assert Config.LLM_TIMEOUT > 0
        assert Config.VISION_TIMEOUT > 0


class TestValidate:

    def test_missing_text_key(self):
        with patch.object(Config, 'GROQ_API_KEY', None):
            with pytest.raises(ValueError, match="GROQ_API_KEY"):
                Config.validate()

    def test_missing_vision_key_only_warns(self):
        with patch.object(Config, 'GROQ_API_KEY', 'gsk_test'), \
                patch.object(Config, 'OPENROUTER_API_KEY', None), \
                patch.object(Config, 'ENABLE_TEXTRACT_FALLBACK', False):
            assert Config.validate() is True

    def test_textract_requires_credentials(self):
        with patch.object(Config, 'GROQ_API_KEY', 'gsk_test'), \
                patch.object(Config, 'ENABLE_TEXTRACT_FALLBACK', True), \
                patch.object(Config, 'AWS_PROFILE', None), \
                patch.object(Config, 'AWS_ACCESS_KEY_ID', None), \
                patch.object(Config, 'AWS_SECRET_ACCESS_KEY', None):
            with pytest.raises(ValueError, match="AWS credentials"):
                Config.validate()

    def test_temporary_keys_require_session_token(self):
        with patch.object(Config, 'GROQ_API_KEY', 'gsk_test'), \
                patch.object(Config, 'ENABLE_TEXTRACT_FALLBACK', True), \
                patch.object(Config, 'AWS_PROFILE', None), \
                patch.object(Config, 'AWS_ACCESS_KEY_ID', 'ASIAEXAMPLE'), \
                patch.object(Config, 'AWS_SECRET_ACCESS_KEY', 'secret'), \
                patch.object(Config, 'AWS_SESSION_TOKEN', None):
            with pytest.raises(ValueError, match="AWS_SESSION_TOKEN"):
                Config.validate()


class TestBoto3Config:

    def test_profile_takes_precedence(self):
        with patch.object(Config, 'AWS_PROFILE', 'dev'), patch.object(Config, 'AWS_REGION', 'us-west-2'):
            assert Config.get_boto3_config() == {'profile_name': 'dev', 'region_name': 'us-west-2'}

    def test_static_keys_with_session_token(self):
        with patch.object(Config, 'AWS_PROFILE', None), \
                patch.object(Config, 'AWS_REGION', 'us-east-1'), \
                patch.object(Config, 'AWS_ACCESS_KEY_ID', 'ASIAEXAMPLE'), \
                patch.object(Config, 'AWS_SECRET_ACCESS_KEY', 'secret'), \
                patch.object(Config, 'AWS_SESSION_TOKEN', 'token'):
            assert Config.get_boto3_config() == {
                'region_name': 'us-east-1',
                'aws_access_key_id': 'ASIAEXAMPLE',
                'aws_secret_access_key': 'secret',
                'aws_session_token': 'token'
            }


def test_is_production():
    with patch.object(Config, 'ENVIRONMENT', 'Production'):
        assert Config.is_production() is True
    with patch.object(Config, 'ENVIRONMENT', 'development'):
        assert Config.is_production() is False
