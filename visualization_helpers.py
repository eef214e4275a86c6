"""
Visualization Helpers for the Sinistralidade report

Reusable Plotly chart builders fed by the plain report dict, so the pages
never reach into the engine.
"""

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from typing import Dict, List, Optional

from constants import AGE_BRACKETS, STATUS_COLORS, STATUS_LABELS
from claims_engine import STATUS_KEYS, TOTAL_KEY
from claims_engine.utils.formatting import format_currency, format_count, format_percentage, status_label


MEASURE_LABELS = {
    'count': 'Vidas',
    'value': 'Valor de procedimentos (R$)',
    'net_value': 'Faturamento (R$)',
}


def generate_monthly_status_chart(
    monthly: List[Dict],
    measure: str = 'count',
    title: str = 'Vidas com sinistro por status',
) -> go.Figure:
    """
    Generate stacked bar chart of a monthly measure split by status.

    Args:
        monthly: report['by_month']
        measure: 'count', 'value' or 'net_value'
        title: Chart title

    Returns:
        Plotly Figure object
    """
    months = [record['month'] for record in monthly]

    fig = go.Figure()
    for status in STATUS_KEYS:
        fig.add_trace(go.Bar(
            name=STATUS_LABELS[status],
            x=months,
            y=[record[f"{status}_{measure}"] for record in monthly],
            marker_color=STATUS_COLORS[status],
        ))

    fig.update_layout(
        barmode='stack',
        title=title,
        height=400,
        legend=dict(orientation='h', yanchor='bottom', y=1.02, xanchor='right', x=1),
    )
    fig.update_xaxes(title='Competência', type='category')
    fig.update_yaxes(title=MEASURE_LABELS.get(measure, measure))
    return fig


def generate_claims_ratio_chart(
    monthly: List[Dict],
    title: str = 'Sinistralidade (IS) por mês',
) -> go.Figure:
    """
    Generate line chart of the claims ratio (cost / revenue) per month.

    Months without revenue have no ratio and show as gaps.
    """
    months = [record['month'] for record in monthly]

    fig = go.Figure()
    for status in (TOTAL_KEY, 'active'):
        fig.add_trace(go.Scatter(
            name=STATUS_LABELS[status],
            x=months,
            y=[record[f"{status}_claims_ratio"] for record in monthly],
            mode='lines+markers',
            line=dict(color=STATUS_COLORS[status]),
            connectgaps=False,
        ))

    fig.update_layout(title=title, height=350)
    fig.update_xaxes(title='Competência', type='category')
    fig.update_yaxes(title='IS', tickformat='.0%')
    return fig


def generate_dimension_share_chart(
    rows: List[Dict],
    dimension: str,
    status: str = TOTAL_KEY,
    measure: str = 'count',
    title: Optional[str] = None,
    top_n: int = 15,
) -> go.Figure:
    """
    Generate horizontal bar chart of one dimension's slices for a status,
    summed over the months in `rows`.

    Args:
        rows: A by_<dimension> section of the report
        dimension: Dimension key ('organization', 'plan', ...)
        status: Status whose rows are plotted
        measure: 'count' or 'value'
        title: Chart title
        top_n: Number of largest slices shown

    Returns:
        Plotly Figure object
    """
    df = pd.DataFrame([row for row in rows if row['status'] == status])
    if df.empty:
        fig = go.Figure()
        fig.update_layout(title=title or 'Sem dados para o período', height=300)
        return fig

    totals = df.groupby(dimension)[measure].sum().sort_values(ascending=False).head(top_n)
    totals = totals.sort_values()

    fig = px.bar(
        x=totals.values,
        y=totals.index,
        orientation='h',
        title=title or f"{MEASURE_LABELS.get(measure, measure)} - {status_label(status)}",
        labels={'x': MEASURE_LABELS.get(measure, measure), 'y': ''},
        color_discrete_sequence=[STATUS_COLORS.get(status, '#1f77b4')],
    )
    fig.update_layout(showlegend=False, height=max(300, 28 * len(totals) + 120))
    return fig


def generate_age_bracket_chart(
    rows: List[Dict],
    title: str = 'Vidas com sinistro por faixa etária',
) -> go.Figure:
    """Generate grouped bar chart of by_age_bracket rows, brackets in display order."""
    df = pd.DataFrame([row for row in rows if row['status'] in STATUS_KEYS])

    fig = go.Figure()
    for status in STATUS_KEYS:
        subset = df[df['status'] == status] if not df.empty else df
        counts = subset.groupby('age_bracket')['count'].sum() if not subset.empty else pd.Series(dtype=int)
        fig.add_trace(go.Bar(
            name=STATUS_LABELS[status],
            x=AGE_BRACKETS,
            y=[int(counts.get(bracket, 0)) for bracket in AGE_BRACKETS],
            marker_color=STATUS_COLORS[status],
        ))

    fig.update_layout(barmode='group', title=title, height=400)
    fig.update_xaxes(title='Faixa etária')
    fig.update_yaxes(title='Vidas')
    return fig


def generate_active_lives_chart(
    active_lives: List[Dict],
    title: str = 'Vidas ativas por mês',
) -> go.Figure:
    """
    Generate bar chart of active lives per month.

    Rows from a report carry the with/without claims split and are stacked;
    plain roster rows (month, active_lives) are drawn as a single series.
    """
    months = [row['month'] for row in active_lives]

    fig = go.Figure()
    if active_lives and 'active_with_claims' in active_lives[0]:
        fig.add_trace(go.Bar(
            name='Com sinistro',
            x=months,
            y=[row['active_with_claims'] for row in active_lives],
            marker_color=STATUS_COLORS['active'],
        ))
        fig.add_trace(go.Bar(
            name='Sem sinistro',
            x=months,
            y=[row['active_without_claims'] for row in active_lives],
            marker_color='#c7e9c0',
        ))
    else:
        fig.add_trace(go.Bar(
            name='Vidas ativas',
            x=months,
            y=[row['active_lives'] for row in active_lives],
            marker_color=STATUS_COLORS['active'],
        ))

    fig.update_layout(barmode='stack', title=title, height=350)
    fig.update_xaxes(title='Competência', type='category')
    fig.update_yaxes(title='Vidas')
    return fig


def build_monthly_table(monthly: List[Dict]) -> pd.DataFrame:
    """Display table of the monthly aggregate with Brazilian formatting."""
    table = []
    for record in monthly:
        row = {'Mês': record['month']}
        for status in STATUS_KEYS + [TOTAL_KEY]:
            label = STATUS_LABELS[status]
            row[f"{label} - vidas"] = format_count(record[f"{status}_count"])
            row[f"{label} - valor"] = format_currency(record[f"{status}_value"])
        row['IS total'] = format_percentage(record[f"{TOTAL_KEY}_claims_ratio"])
        table.append(row)
    return pd.DataFrame(table)


def build_dimension_table(rows: List[Dict], dimension_label: str, dimension: str) -> pd.DataFrame:
    """Display table of a by_<dimension> section with formatted shares."""
    table = []
    for row in rows:
        table.append({
            'Mês': row['month'],
            'Status': status_label(row['status']),
            dimension_label: row[dimension],
            'Vidas': format_count(row['count']),
            '% vidas': format_percentage(row['pct_count']),
            'Valor': format_currency(row['value']),
            '% valor': format_percentage(row['pct_value']),
            'IS': format_percentage(row['claims_ratio']),
        })
    return pd.DataFrame(table)
