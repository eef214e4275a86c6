"""
Page 1: Claims Ratio
Build the sinistralidade report for a period and explore it by status,
organization, plan, age bracket and renewal month
"""

import logging
import sys
from datetime import date
from pathlib import Path

import psycopg2
from sqlalchemy.exc import SQLAlchemyError
import streamlit as st

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from claims_engine import FeedFilters, ReportTimeoutError, ReportValidationError
from claims_engine.services import EligibilityIndex, ReportService, apply_feed_filters, in_filter_scope
from claims_engine.utils import ReportPeriod, format_currency, format_percentage, shift_month, trailing_months
from config import ReportConfig
from constants import ACTIVE_LIVES_WINDOW_MONTHS, ALL_TYPES
from database import get_database_connection
from filter_options import FilterOptionsCache
from queries import ClaimsQueries
from report_export import export_filename, report_to_csv, report_to_json
from visualization_helpers import (
    build_dimension_table,
    build_monthly_table,
    generate_active_lives_chart,
    generate_age_bracket_chart,
    generate_claims_ratio_chart,
    generate_dimension_share_chart,
    generate_monthly_status_chart,
)

logger = logging.getLogger(__name__)

st.set_page_config(page_title="Claims ratio", page_icon="📊", layout="wide")


# Initialize session state
if 'db' not in st.session_state:
    st.session_state.db = get_database_connection()

if 'report_config' not in st.session_state:
    st.session_state.report_config = ReportConfig.from_environment()

if 'report' not in st.session_state:
    st.session_state.report = None

if st.session_state.get('filter_options_cache') is None:
    db = st.session_state.db
    st.session_state.filter_options_cache = FilterOptionsCache(
        lambda operator, start, end: ClaimsQueries.get_filter_options(db, operator, start, end)
    )

config: ReportConfig = st.session_state.report_config
options_cache: FilterOptionsCache = st.session_state.filter_options_cache


# Page header
st.title("📊 Sinistralidade")
st.markdown("Procedimentos por status do beneficiário no fim de cada mês")


# =============================================================================
# FILTERS
# =============================================================================

today = date.today()
default_end = f"{today.year:04d}-{today.month:02d}"
default_start = shift_month(default_end, -2)

with st.sidebar:
    st.subheader("Filtros")

    try:
        operators = ClaimsQueries.get_operators(st.session_state.db) or [config.default_operator]
    except psycopg2.Error:
        st.error("Não foi possível carregar as operadoras.")
        st.stop()

    operator = st.selectbox(
        "Operadora",
        operators,
        index=operators.index(config.default_operator) if config.default_operator in operators else 0,
    )
    start_month = st.text_input("Mês inicial (AAAA-MM)", value=default_start)
    end_month = st.text_input("Mês final (AAAA-MM)", value=default_end)

    try:
        period = ReportPeriod.from_range(f"{start_month}-01", f"{end_month}-01")
    except ReportValidationError as e:
        st.error(f"Período inválido: {e.message}")
        st.stop()

    try:
        options = options_cache.get(operator, period.first_day, period.last_day)
        organizations = st.multiselect("Entidades", options['organizations'])
        scoped_options = options_cache.get(
            operator, period.first_day, period.last_day,
            FeedFilters(operators=[operator], organizations=organizations),
        ) if organizations else options
    except psycopg2.Error:
        st.error("Não foi possível carregar os filtros.")
        st.stop()
    plans = st.multiselect("Planos", scoped_options['plans'])
    renewal_months = st.multiselect("Mês de reajuste", scoped_options['renewal_months'])
    beneficiary_type = st.selectbox("Tipo", [ALL_TYPES] + scoped_options['beneficiary_types'])
    cpf = st.text_input("CPF", value="").strip() or None

    if st.button("🔄 Recarregar filtros"):
        options_cache.invalidate(operator)
        st.rerun()

    build_clicked = st.button("Gerar relatório", type="primary", width="stretch")


# =============================================================================
# BUILD
# =============================================================================

if build_clicked:
    filters = FeedFilters(
        operators=[operator],
        organizations=organizations,
        plans=plans,
        renewal_months=renewal_months,
        beneficiary_type=None if beneficiary_type == ALL_TYPES else beneficiary_type,
        cpf=cpf,
        plan_exclude_patterns=list(config.plan_exclude_patterns),
    )
    # Enrollments are loaded in full: status for past months needs the whole history
    with st.spinner("Carregando dados e reconciliando..."):
        try:
            db = st.session_state.db
            enrollments_df = ClaimsQueries.get_enrollment_feed(db, operator)
            claims_df = ClaimsQueries.get_claims_feed(db, operator, period.first_day, period.last_day)
            revenue_df = ClaimsQueries.get_revenue_feed(db, operator)
            st.session_state.report = ReportService(config).build_report(
                enrollments_df, claims_df, period, filters=filters, revenue_df=revenue_df,
            )
            base_enrollments, _ = apply_feed_filters(enrollments_df, claims_df.iloc[0:0], filters)
            st.session_state.active_lives_window = EligibilityIndex.from_dataframe(
                base_enrollments
            ).active_lives_by_month(
                trailing_months(period.months[-1], ACTIVE_LIVES_WINDOW_MONTHS),
                include=lambda record: in_filter_scope(record, filters),
            )
        except ReportValidationError as e:
            st.error(f"Dados inválidos: {e.message}")
            st.stop()
        except ReportTimeoutError as e:
            st.warning(f"{e} Tente novamente ou reduza o período.")
            st.stop()
        except (psycopg2.Error, SQLAlchemyError):
            st.error("Erro ao consultar o banco de dados.")
            st.stop()

report = st.session_state.report
if report is None:
    st.info("👈 Escolha o período e os filtros e clique em **Gerar relatório**")
    st.stop()

for warning in report['warnings']:
    st.warning(f"⚠️ Inconsistência: {warning}")


# =============================================================================
# SUMMARY
# =============================================================================

consolidated = report['consolidated']
by_status = {row['status']: row for row in report['by_status']}

col1, col2, col3, col4 = st.columns(4)
with col1:
    st.metric("Vidas com sinistro", consolidated['total_count'])
    st.caption("Pessoa-mês no período")
with col2:
    st.metric("Ativos", consolidated['active_count'], format_percentage(by_status['active']['pct_count']),
              delta_color="off")
with col3:
    st.metric("Inativos", consolidated['inactive_count'], format_percentage(by_status['inactive']['pct_count']),
              delta_color="off")
with col4:
    st.metric("Não localizados", consolidated['unmatched_count'],
              format_percentage(by_status['unmatched']['pct_count']), delta_color="off")

col1, col2, col3 = st.columns(3)
with col1:
    st.metric("Valor de procedimentos", format_currency(consolidated['total_value']))
with col2:
    st.metric("Faturamento", format_currency(consolidated['total_net_value']))
with col3:
    st.metric("IS", format_percentage(consolidated['total_claims_ratio']))


# =============================================================================
# CHARTS
# =============================================================================

tab_month, tab_org, tab_plan, tab_age, tab_renewal, tab_lives = st.tabs([
    "Mensal", "Entidades", "Planos", "Faixa etária", "Mês de reajuste", "Vidas ativas",
])

with tab_month:
    measure = st.radio("Medida", ['count', 'value'], horizontal=True,
                       format_func=lambda m: "Vidas" if m == 'count' else "Valor")
    st.plotly_chart(generate_monthly_status_chart(report['by_month'], measure=measure), width="stretch")
    st.plotly_chart(generate_claims_ratio_chart(report['by_month']), width="stretch")
    st.dataframe(build_monthly_table(report['by_month']), hide_index=True, width="stretch")

for tab, section, dimension, label in (
    (tab_org, 'by_organization', 'organization', 'Entidade'),
    (tab_plan, 'by_plan', 'plan', 'Plano'),
    (tab_renewal, 'by_renewal_month', 'renewal_month', 'Mês de reajuste'),
):
    with tab:
        rows = report.get(section, [])
        st.plotly_chart(generate_dimension_share_chart(rows, dimension), width="stretch")
        st.dataframe(build_dimension_table(rows, label, dimension), hide_index=True, width="stretch")

with tab_age:
    rows = report.get('by_age_bracket', [])
    st.plotly_chart(generate_age_bracket_chart(rows), width="stretch")
    st.dataframe(build_dimension_table(rows, 'Faixa etária', 'age_bracket'), hide_index=True, width="stretch")

with tab_lives:
    st.plotly_chart(generate_active_lives_chart(report['active_lives']), width="stretch")
    window = st.session_state.get('active_lives_window')
    if window:
        st.plotly_chart(
            generate_active_lives_chart(
                window, title=f"Vidas ativas - últimos {ACTIVE_LIVES_WINDOW_MONTHS} meses"
            ),
            width="stretch",
        )


# =============================================================================
# EXPORT
# =============================================================================

st.markdown("---")
st.subheader("📥 Exportar")

col1, col2 = st.columns(2)
with col1:
    section = st.selectbox(
        "Tabela",
        ['by_month', 'by_status', 'by_organization', 'by_plan', 'by_age_bracket', 'by_renewal_month', 'active_lives'],
    )
    st.download_button(
        label="📥 Baixar CSV",
        data=report_to_csv(report, section),
        file_name=export_filename(report, section, "csv"),
        mime="text/csv",
    )
with col2:
    st.download_button(
        label="📥 Baixar JSON completo",
        data=report_to_json(report),
        file_name=export_filename(report, "relatorio", "json"),
        mime="application/json",
    )
