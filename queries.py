"""
SQL queries for the Sinistralidade report
All queries against the claims PostgreSQL database

Column names are aliased to the canonical names in claims_schema so the
returned DataFrames can go straight into the engine. The three feeds are
read whole with DatabaseConnection.read_frame; option lists use
execute_query.
"""

from datetime import date
from typing import List, Optional

import pandas as pd

from database import DatabaseConnection


class ClaimsQueries:
    """SQL queries for the enrollment, claims and revenue feeds"""

    @staticmethod
    def get_enrollment_feed(db: DatabaseConnection, operator: str,
                            cpf: Optional[str] = None) -> pd.DataFrame:
        """
        Get every enrollment record (vigência) of an operator.

        The whole history is returned, not just current records: status for a
        past month is resolved from the records in force back then.

        Args:
            db: Database connection
            operator: Operator name (case-insensitive)
            cpf: Optional single person

        Returns:
            DataFrame with record_id, cpf, operator, organization, plan, age,
            status, start_date, exclusion_date, renewal_month, beneficiary_type
        """
        query = """
        SELECT
            b.id AS record_id,
            b.cpf,
            b.operadora AS operator,
            b.entidade AS organization,
            b.plano AS plan,
            b.idade AS age,
            b.status_beneficiario AS status,
            b.data_inicio_vigencia_beneficiario AS start_date,
            b.data_exclusao AS exclusion_date,
            b.mes_reajuste AS renewal_month,
            b.tipo AS beneficiary_type
        FROM reg_beneficiarios b
        WHERE UPPER(b.operadora) = UPPER(%s)
            AND b.cpf IS NOT NULL
        """

        params = [operator]

        if cpf:
            query += " AND b.cpf = %s"
            params.append(cpf)

        query += " ORDER BY b.cpf, b.data_inicio_vigencia_beneficiario, b.id"

        return db.read_frame(query, tuple(params))

    @staticmethod
    def get_claims_feed(db: DatabaseConnection, operator: str,
                        start_date: date, end_date: date,
                        cpf: Optional[str] = None) -> pd.DataFrame:
        """
        Get billable claim lines of an operator within a competence date range.

        Args:
            db: Database connection
            operator: Operator name (case-insensitive)
            start_date: First competence date (inclusive)
            end_date: Last competence date (inclusive)
            cpf: Optional single person

        Returns:
            DataFrame with month ('YYYY-MM'), cpf, operator, amount, event
        """
        query = """
        SELECT
            TO_CHAR(p.data_competencia, 'YYYY-MM') AS month,
            p.cpf,
            p.operadora AS operator,
            p.valor_procedimento AS amount,
            p.evento AS event
        FROM reg_procedimentos p
        WHERE UPPER(p.operadora) = UPPER(%s)
            AND p.evento IS NOT NULL
            AND p.data_competencia::date BETWEEN %s AND %s
        """

        params = [operator, start_date, end_date]

        if cpf:
            query += " AND p.cpf = %s"
            params.append(cpf)

        return db.read_frame(query, tuple(params))

    @staticmethod
    def get_revenue_feed(db: DatabaseConnection, operator: str) -> pd.DataFrame:
        """
        Get the billed revenue (vlr_net) per person.

        Revenue is one fixed figure per CPF regardless of competence, so the
        largest billed value is taken.

        Returns:
            DataFrame with cpf, revenue
        """
        query = """
        SELECT
            f.cpf_do_beneficiario AS cpf,
            MAX(f.vlr_net) AS revenue
        FROM reg_faturamento f
        WHERE UPPER(f.operadora) = UPPER(%s)
            AND f.cpf_do_beneficiario IS NOT NULL
        GROUP BY f.cpf_do_beneficiario
        """

        return db.read_frame(query, (operator,))

    @staticmethod
    def get_filter_options(db: DatabaseConnection, operator: Optional[str] = None,
                           start_date: Optional[date] = None,
                           end_date: Optional[date] = None) -> pd.DataFrame:
        """
        Get the distinct filter values found in the enrollment feed.

        Args:
            db: Database connection
            operator: Optional operator to restrict the options to
            start_date: Optional period start; drops records excluded before it
            end_date: Optional period end; drops records starting after it

        Returns:
            DataFrame with operator, organization, plan, renewal_month,
            beneficiary_type and start_month columns (one row per distinct combination)
        """
        query = """
        SELECT DISTINCT
            b.operadora AS operator,
            b.entidade AS organization,
            b.plano AS plan,
            b.mes_reajuste AS renewal_month,
            b.tipo AS beneficiary_type,
            TO_CHAR(b.data_inicio_vigencia_beneficiario, 'YYYY-MM') AS start_month
        FROM reg_beneficiarios b
        WHERE b.operadora IS NOT NULL AND b.operadora <> ''
        """

        filters = []
        params = []

        if operator:
            filters.append("UPPER(b.operadora) = UPPER(%s)")
            params.append(operator)

        if end_date:
            filters.append("b.data_inicio_vigencia_beneficiario <= %s")
            params.append(end_date)

        if start_date:
            filters.append("(b.data_exclusao IS NULL OR b.data_exclusao >= %s)")
            params.append(start_date)

        if filters:
            query += " AND " + " AND ".join(filters)

        query += " ORDER BY operator, organization, plan"

        return db.execute_query(query, tuple(params) if params else None)

    @staticmethod
    def get_operators(db: DatabaseConnection) -> List[str]:
        """Get the operators present in the enrollment feed, sorted."""
        query = """
        SELECT DISTINCT operadora AS operator
        FROM reg_beneficiarios
        WHERE operadora IS NOT NULL AND operadora <> ''
        ORDER BY operadora
        """
        df = db.execute_query(query)
        if df.empty:
            return []
        return df['operator'].tolist()
