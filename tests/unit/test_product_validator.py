import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from pricescout.models.schemas import ValidationRequest
from pricescout.services.llm_service import ClaudeServiceError, ResponseParseError
from pricescout.services.product_validator import (
    ClaudeProductValidator,
    HeuristicProductValidator,
    create_product_validator,
    extract_model,
)
from pricescout.utils.retry import ValidationCollaboratorError

def make_request(product_name, query="taladro bosch", **kwargs):
    return ValidationRequest(query=query, product_name=product_name, **kwargs)

# =============================================================================
# Heuristic
# =============================================================================

@pytest.mark.parametrize("text, expected", [
    ("Taladro Bosch modelo GSB-120", "GSB-120"),
    ("DeWalt DWE7491 table saw", "DWE7491"),
    ("Milwaukee M18 V18 kit", "V18"),
    ("Guantes de nitrilo", None),
])
def test_extract_model(text, expected):
    assert extract_model(text) == expected

def test_heuristic_exact_match():
    result = HeuristicProductValidator().validate(
        make_request("Taladro Bosch GSB 120", brand="Bosch", price=250.0)
    )
    assert result.confidence_score == 1.0
    assert result.is_exact_match
    assert result.extracted_brand == "Bosch"
    assert result.provider == "heuristic"

def test_heuristic_wrong_brand():
    result = HeuristicProductValidator().validate(
        make_request("Taladro Makita HP1630", brand="Makita", price=250.0)
    )
    # half the words, brand mentioned only in the query
    assert result.confidence_score == 0.4
    assert not result.is_exact_match
    assert result.extracted_brand == "Bosch"

def test_heuristic_no_price():
    result = HeuristicProductValidator().validate(make_request("Taladro Bosch", brand="Bosch"))
    assert result.confidence_score == 0.9
    assert result.is_exact_match

@pytest.mark.asyncio
async def test_heuristic_batch_preserves_order():
    requests = [make_request("Taladro Makita"), make_request("Taladro Bosch", price=10.0)]
    results = await HeuristicProductValidator().batch_validate(requests)
    assert len(results) == 2
    assert results[0].confidence_score < results[1].confidence_score

@pytest.mark.asyncio
async def test_heuristic_batch_empty():
    assert await HeuristicProductValidator().batch_validate([]) == []

# =============================================================================
# Claude
# =============================================================================

@pytest.fixture
def claude_service():
    service = MagicMock()
    service.generate_json = AsyncMock()
    service.close = AsyncMock()
    return service

@pytest.mark.asyncio
async def test_claude_batch_success(mock_settings, claude_service):
    claude_service.generate_json.return_value = [
        {"index": 1, "is_exact_match": False, "confidence_score": 0.3, "reasoning": "other brand"},
        {"index": 0, "is_exact_match": True, "confidence_score": 0.95,
         "extracted_brand": "Bosch", "extracted_model": "GSB 120", "reasoning": "same product"},
    ]
    validator = ClaudeProductValidator(settings=mock_settings, service=claude_service)

    results = await validator.batch_validate([
        make_request("Taladro Bosch GSB 120"),
        make_request("Taladro Makita"),
    ])

    assert [r.confidence_score for r in results] == [0.95, 0.3]
    assert results[0].extracted_model == "GSB 120"
    assert all(r.provider == "claude" for r in results)
    claude_service.generate_json.assert_awaited_once()

@pytest.mark.asyncio
async def test_claude_groups_by_query(mock_settings, claude_service):
    claude_service.generate_json.side_effect = [
        [{"is_exact_match": True, "confidence_score": 0.9}],
        [{"is_exact_match": True, "confidence_score": 0.8}],
    ]
    validator = ClaudeProductValidator(settings=mock_settings, service=claude_service)

    results = await validator.batch_validate([
        make_request("Taladro Bosch", query="taladro bosch"),
        make_request("Casco 3M", query="casco 3m"),
    ])

    assert [r.confidence_score for r in results] == [0.9, 0.8]
    assert claude_service.generate_json.await_count == 2

@pytest.mark.asyncio
async def test_claude_length_mismatch(mock_settings, claude_service):
    claude_service.generate_json.return_value = [{"is_exact_match": True, "confidence_score": 0.9}]
    validator = ClaudeProductValidator(settings=mock_settings, service=claude_service)

    with pytest.raises(ValidationCollaboratorError):
        await validator.batch_validate([make_request("a"), make_request("b")])

@pytest.mark.asyncio
async def test_claude_schema_error(mock_settings, claude_service):
    claude_service.generate_json.return_value = {"not": "a list"}
    validator = ClaudeProductValidator(settings=mock_settings, service=claude_service)

    with pytest.raises(ValidationCollaboratorError):
        await validator.batch_validate([make_request("a")])

@pytest.mark.asyncio
async def test_claude_api_error(mock_settings, claude_service):
    claude_service.generate_json.side_effect = ClaudeServiceError("Authentication failed")
    validator = ClaudeProductValidator(settings=mock_settings, service=claude_service)

    with pytest.raises(ValidationCollaboratorError):
        await validator.batch_validate([make_request("a")])

@pytest.mark.asyncio
async def test_claude_retries_malformed_reply_once(mock_settings, claude_service, monkeypatch):
    monkeypatch.setattr(asyncio, "sleep", AsyncMock())
    claude_service.generate_json.side_effect = [
        ResponseParseError("Invalid JSON", raw_response="nope"),
        [{"is_exact_match": True, "confidence_score": 0.9}],
    ]
    validator = ClaudeProductValidator(settings=mock_settings, service=claude_service)

    results = await validator.batch_validate([make_request("Taladro Bosch")])

    assert results[0].confidence_score == 0.9
    assert claude_service.generate_json.await_count == 2

@pytest.mark.asyncio
async def test_claude_close(mock_settings, claude_service):
    validator = ClaudeProductValidator(settings=mock_settings, service=claude_service)
    await validator.close()
    claude_service.close.assert_awaited_once()

# =============================================================================
# Factory
# =============================================================================

def test_factory_heuristic(mock_settings):
    assert isinstance(create_product_validator(mock_settings), HeuristicProductValidator)

def test_factory_claude(mock_settings, mocker):
    mock_settings.get_validator_provider.return_value = "claude"
    mocker.patch("pricescout.services.llm_service.anthropic.AsyncAnthropic")
    assert isinstance(create_product_validator(mock_settings), ClaudeProductValidator)

def test_factory_claude_without_key_falls_back(mock_settings):
    mock_settings.get_validator_provider.return_value = "claude"
    mock_settings.anthropic_api_key = None
    assert isinstance(create_product_validator(mock_settings), HeuristicProductValidator)
