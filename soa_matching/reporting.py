"""
Batch result summaries and review sheet export.

The reconciliation workflow shows reviewers which lines were matched at
which pass and which are discrepancies; these helpers build that view.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import pandas as pd

from soa_matching.models import MatchingSettings, MatchResult, PASS_SCORES

import logging
logger = logging.getLogger(__name__)

REVIEW_COLUMNS = [
    'SOA Line', 'Status', 'Pass', 'Confidence', 'Match Score', 'Invoice ID',
    'Invoice Number', 'Invoice Amount', 'Currency', 'Criteria', 'Reason', 'Error'
]


def _status(result: MatchResult, settings: MatchingSettings) -> str:
    if result.error:
        return 'ERROR'
    if not result.is_matched:
        return 'DISCREPANCY'
    if result.confidence >= settings.auto_confirm_min_confidence:
        return 'AUTO_CONFIRM'
    return 'REVIEW'


def summarize_results(results: Sequence[MatchResult],
                      settings: Optional[MatchingSettings] = None) -> Dict[str, Any]:
    """
    Summary statistics for a batch of match results.

    Args:
        results: Results of batch_match_soa_lines
        settings: Settings holding the auto-confirm threshold (defaults if None)

    Returns:
        Dictionary with totals, per-pass counts and match rate
    """
    settings = settings or MatchingSettings()
    by_pass = {pass_number: 0 for pass_number in [0, *PASS_SCORES]}
    statuses = {'AUTO_CONFIRM': 0, 'REVIEW': 0, 'DISCREPANCY': 0, 'ERROR': 0}

    for result in results:
        by_pass[result.pass_number] += 1
        statuses[_status(result, settings)] += 1

    total = len(results)
    matched = total - by_pass[0]
    return {
        'total_lines': total,
        'matched': matched,
        'unmatched': by_pass[0],
        'errors': statuses['ERROR'],
        'by_pass': by_pass,
        'auto_confirmable': statuses['AUTO_CONFIRM'],
        'needs_review': statuses['REVIEW'],
        'discrepancies': statuses['DISCREPANCY'],
        'match_rate': matched / total if total else 0.0
    }


def results_to_dataframe(results: Sequence[MatchResult],
                         settings: Optional[MatchingSettings] = None) -> pd.DataFrame:
    """
    One review sheet row per SOA line, in input order.

    Args:
        results: Results of batch_match_soa_lines
        settings: Settings holding the auto-confirm threshold (defaults if None)

    Returns:
        DataFrame with REVIEW_COLUMNS
    """
    settings = settings or MatchingSettings()
    rows = []
    for result in results:
        invoice = result.invoice
        rows.append({
            'SOA Line': result.soa_line_id,
            'Status': _status(result, settings),
            'Pass': result.pass_number,
            'Confidence': result.confidence,
            'Match Score': result.match_score,
            'Invoice ID': invoice.id if invoice else '',
            'Invoice Number': invoice.invoice_number if invoice else '',
            'Invoice Amount': str(invoice.total_amount) if invoice and invoice.total_amount is not None else '',
            'Currency': invoice.currency_code if invoice else '',
            'Criteria': ', '.join(f"{key}={value}" for key, value in result.match_criteria.items()),
            'Reason': result.reason or '',
            'Error': result.error or ''
        })
    return pd.DataFrame(rows, columns=REVIEW_COLUMNS)


def export_results(results: Sequence[MatchResult], output_path: Union[str, Path],
                   settings: Optional[MatchingSettings] = None) -> Path:
    """
    Write the review sheet to .csv or .xlsx.

    Args:
        results: Results of batch_match_soa_lines
        output_path: Target file; the suffix picks the format
        settings: Settings holding the auto-confirm threshold

    Returns:
        Path of the written file
    """
    output_path = Path(output_path)
    df = results_to_dataframe(results, settings)

    suffix = output_path.suffix.lower()
    if suffix == '.xlsx':
        df.to_excel(output_path, index=False, engine='openpyxl')
    elif suffix == '.csv':
        df.to_csv(output_path, index=False)
    else:
        raise ValueError(f"Unsupported export format: {output_path.suffix}")

    logger.info(f"Exported {len(df)} match results to {output_path}")
    return output_path
