"""
Sinistralidade (Claims Ratio) Report - Main Application
Streamlit entry point: login gate, session setup and the home page.
The report itself lives in pages/1_Claims_ratio.py.
"""

import sys
import os
import hmac
import time
import hashlib
import logging
from pathlib import Path
from typing import Optional

# Configure logging BEFORE importing streamlit
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s',
    datefmt='%H:%M:%S',
    force=True  # Override any existing config
)
logging.info("APP STARTUP: Logging initialized")

import streamlit as st

# Add current directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from constants import APP_CONFIG, PAGE_NAMES, STATUS_LABELS
from config import ReportConfig
from database import check_connection, get_database_connection

logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_SECONDS = 300


# =============================================================================
# LOGIN
# =============================================================================

def configured_password() -> Optional[str]:
    """APP_PASSWORD, else [app] password in secrets.toml, else None (no login)."""
    if os.environ.get('APP_PASSWORD'):
        return os.environ['APP_PASSWORD']
    try:
        return st.secrets.get('app', {}).get('password')
    except FileNotFoundError:
        return None


def passwords_match(candidate: str, expected: str) -> bool:
    # Digests have a fixed length, so the comparison time does not leak the password length
    return hmac.compare_digest(
        hashlib.sha256(candidate.encode('utf-8')).digest(),
        hashlib.sha256(expected.encode('utf-8')).digest(),
    )


def recent_attempts(now: float) -> list:
    attempts = [t for t in st.session_state.get('login_attempts', []) if now - t < LOCKOUT_SECONDS]
    st.session_state.login_attempts = attempts
    return attempts


def check_authentication() -> bool:
    """Render the login form when a password is configured; True once logged in."""
    expected = configured_password()
    if not expected or st.session_state.get('authenticated', False):
        return True

    st.title("🔐 Sinistralidade")
    now = time.time()
    attempts = recent_attempts(now)
    if len(attempts) >= MAX_LOGIN_ATTEMPTS:
        wait = int(LOCKOUT_SECONDS - (now - attempts[0]))
        st.error(f"Muitas tentativas. Tente novamente em {wait} segundos.")
        return False

    password = st.text_input("Senha", type="password", key="login_password")
    if st.button("Entrar", type="primary"):
        if passwords_match(password, expected):
            st.session_state.authenticated = True
            st.session_state.login_attempts = []
            logger.info("AUTH: Login succeeded")
            st.rerun()
        attempts.append(now)
        logger.warning(f"AUTH: Login failed ({len(attempts)}/{MAX_LOGIN_ATTEMPTS})")
        left = MAX_LOGIN_ATTEMPTS - len(attempts)
        st.error(f"Senha incorreta. {left} tentativa(s) restante(s)." if left else "Muitas tentativas. Aguarde 5 minutos.")

    return False


# =============================================================================
# SESSION
# =============================================================================

def initialize_session_state():
    """Initialize session state variables shared with the pages"""

    if 'report_config' not in st.session_state:
        config = ReportConfig.from_environment()
        is_valid, error = config.validate()
        if not is_valid:
            logger.error(f"CONFIG: Invalid report configuration ({error}), using defaults")
            config = ReportConfig()
        st.session_state.report_config = config

    # Last built report (plain dict from ReportService)
    st.session_state.setdefault('report', None)
    # Built lazily by the report page once the connection exists
    st.session_state.setdefault('filter_options_cache', None)
    st.session_state.setdefault('current_page', 'home')

    if 'db' not in st.session_state:
        st.session_state.db = get_database_connection()


# =============================================================================
# PAGES
# =============================================================================

def render_sidebar():
    st.sidebar.title(f"{APP_CONFIG['icon']} Sinistralidade")
    st.sidebar.markdown("---")

    if st.sidebar.button("🏠 Início", width="stretch"):
        st.session_state.current_page = 'home'
    for page_key, page_name in PAGE_NAMES.items():
        if st.sidebar.button(page_name, width="stretch"):
            st.session_state.current_page = page_key

    st.sidebar.markdown("---")
    report = st.session_state.report
    if report is None:
        st.sidebar.info("Nenhum relatório gerado")
    else:
        st.sidebar.metric("Vidas com sinistro (pessoa-mês)", report['consolidated']['total_count'])
        st.sidebar.caption(f"Período: {report['period'][0]} a {report['period'][-1]}")

    if st.sidebar.button("🔌 Testar conexão"):
        if check_connection(st.session_state.db):
            st.sidebar.success("Banco conectado!")
        else:
            st.sidebar.error("Falha na conexão")


def show_home_page():
    """Display home/welcome page"""
    config: ReportConfig = st.session_state.report_config

    st.markdown(f"""
    ## Relatório de Sinistralidade

    Para cada mês, cada pessoa com procedimentos é classificada pelo status
    da sua vigência no último dia do mês:

    - **{STATUS_LABELS['active']}**: vigência em vigor no fim do mês
    - **{STATUS_LABELS['inactive']}**: havia vigência, mas ela já não cobre o fim do mês
    - **{STATUS_LABELS['unmatched']}**: nenhuma vigência na operadora até o fim do mês

    Os totais são detalhados por entidade, plano, faixa etária e mês de
    reajuste, com a participação de cada fatia no total do mês e o IS
    (valor de procedimentos / faturamento).
    """)

    st.markdown("### Configuração")
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Operadora padrão", config.default_operator)
    with col2:
        st.metric("Planos excluídos", ", ".join(config.plan_exclude_patterns) or "nenhum")
    with col3:
        st.metric("Workers", config.max_workers)


def main():
    """Main application entry point"""
    st.set_page_config(
        page_title=APP_CONFIG['title'],
        page_icon=APP_CONFIG['icon'],
        layout=APP_CONFIG['layout'],
        initial_sidebar_state=APP_CONFIG['initial_sidebar_state']
    )

    if not check_authentication():
        return

    initialize_session_state()
    render_sidebar()

    st.title(APP_CONFIG['title'])
    page = st.session_state.current_page
    if page == 'claims_ratio':
        st.info("Abra **1 Claims ratio** no menu lateral para gerar o relatório")
    elif page == 'export':
        st.info("Gere o relatório em **1 Claims ratio** e use os botões de download ao final da página")
    else:
        show_home_page()


if __name__ == "__main__":
    main()
