"""
AI report and insight generation.

Both flows are a single Gemini ``generateContent`` call in JSON response
mode. Inputs and model outputs are validated with pydantic; any transport,
HTTP or schema failure is raised as AIServiceError. Nothing is retried.
"""
from __future__ import annotations

import base64
import json
import logging
from typing import List, Literal, Optional, Union

import requests
from flask import current_app
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from ibarangay.utils.reports import render_table

logger = logging.getLogger(__name__)


class AIServiceError(Exception):
    """The language model could not produce a usable answer."""


# =============================================================================
# Schemas
# =============================================================================

class CustomReportInput(BaseModel):
    report_title: str = Field(..., min_length=1, description="The title of the report")
    report_parameters: str = Field('{}', description="JSON object of filters: date ranges, document types, statuses")
    report_description: str = Field(..., min_length=1, description="What the report should analyze")
    report_format: Literal['PDF', 'Excel'] = 'PDF'
    resident_data: str = Field('[]', description="JSON array of resident records")
    document_request_data: str = Field('[]', description="JSON array of document requests")


class ReportData(BaseModel):
    title: str
    headers: List[str]
    rows: List[List[Union[str, float, int, None]]] = []


class CustomReportModelOutput(BaseModel):
    report_summary: str
    report_data: ReportData


class CustomReportOutput(BaseModel):
    report: str = Field(..., description="Rendered report, base64 encoded")
    report_summary: str
    filename: str
    mimetype: str


class InsightsInput(BaseModel):
    resident_data: str = '[]'
    document_request_data: str = '[]'
    parameters: Optional[str] = None


class InsightsOutput(BaseModel):
    insights: str


# =============================================================================
# Prompts
# =============================================================================

CUSTOM_REPORT_PROMPT = """You are an AI-powered data analyst for a local government unit. Your task is to generate structured data for a report based on the user's request and the provided JSON data.

Report Title: {report_title}
Report Parameters: {report_parameters}
Report Description: {report_description}

Use the following data to generate the report:
Resident Data: {resident_data}
Document Request Data: {document_request_data}

Extract, aggregate and format the relevant information into a table with a title, column headers and rows. Also provide a brief summary of the key findings.

Respond with JSON only, in exactly this shape:
{{"report_summary": "string", "report_data": {{"title": "string", "headers": ["string"], "rows": [["string or number"]]}}}}
"""

INSIGHTS_PROMPT = """You are an AI assistant tasked with analyzing barangay data to provide valuable insights to the administrator.

Analyze the following resident data and document request patterns to identify trends, potential issues and actionable recommendations.

Resident Data: {resident_data}
Document Request Data: {document_request_data}

Parameters: {parameters}

Provide a well-structured analysis that can help the administrator make data-driven decisions.

Respond with JSON only, in exactly this shape:
{{"insights": "string"}}
"""


# =============================================================================
# Model call
# =============================================================================

def _generate_json(prompt: str) -> dict:
    api_key = current_app.config.get('GEMINI_API_KEY')
    if not api_key:
        raise AIServiceError('GEMINI_API_KEY not configured')

    base = current_app.config.get('GEMINI_API_BASE', 'https://generativelanguage.googleapis.com/v1beta')
    model = current_app.config.get('GEMINI_MODEL', 'gemini-2.0-flash')
    timeout = current_app.config.get('AI_TIMEOUT_SECONDS', 60)
    url = f"{base}/models/{model}:generateContent"

    payload = {
        'contents': [{'parts': [{'text': prompt}]}],
        'generationConfig': {
            'temperature': 0.2,
            'responseMimeType': 'application/json',
        },
    }

    try:
        resp = requests.post(url, params={'key': api_key}, json=payload, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise AIServiceError('AI service request timed out') from e
    except requests.exceptions.RequestException as e:
        raise AIServiceError(f'AI service request failed: {e}') from e

    if resp.status_code != 200:
        logger.error("Gemini API error %s: %s", resp.status_code, resp.text[:500])
        if resp.status_code == 429:
            raise AIServiceError('Too many requests to the AI service')
        raise AIServiceError(f'AI service error ({resp.status_code})')

    try:
        text = resp.json()['candidates'][0]['content']['parts'][0]['text']
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise AIServiceError('AI service returned an unexpected response') from e

    try:
        return json.loads(text)
    except ValueError as e:
        logger.error("AI response was not JSON: %s", text[:500])
        raise AIServiceError('AI service returned malformed JSON') from e


# =============================================================================
# Flows
# =============================================================================

def generate_custom_report(data: dict) -> CustomReportOutput:
    """
    Ask the model for report rows and render them in the requested format.

    Raises:
        pydantic.ValidationError: ``data`` does not match CustomReportInput
        AIServiceError: the model call failed or returned an invalid shape
    """
    params = CustomReportInput.model_validate(data)
    prompt = CUSTOM_REPORT_PROMPT.format(**params.model_dump())
    raw = _generate_json(prompt)

    try:
        output = CustomReportModelOutput.model_validate(raw)
    except PydanticValidationError as e:
        raise AIServiceError('AI service returned an invalid report') from e

    report = output.report_data
    content, mimetype, filename = render_table(
        report.title or params.report_title,
        report.headers,
        report.rows,
        'pdf' if params.report_format == 'PDF' else 'excel',
    )
    logger.info("Generated custom report '%s' with %d rows", params.report_title, len(report.rows))
    return CustomReportOutput(
        report=base64.b64encode(content).decode('ascii'),
        report_summary=output.report_summary,
        filename=filename,
        mimetype=mimetype,
    )


def generate_insights(data: dict) -> InsightsOutput:
    params = InsightsInput.model_validate(data)
    prompt = INSIGHTS_PROMPT.format(
        resident_data=params.resident_data,
        document_request_data=params.document_request_data,
        parameters=params.parameters or 'None',
    )
    raw = _generate_json(prompt)
    try:
        return InsightsOutput.model_validate(raw)
    except PydanticValidationError as e:
        raise AIServiceError('AI service returned invalid insights') from e
