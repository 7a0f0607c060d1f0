"""
Close wizard
Wizard steps, the draft field each one fills and the screen an interrupted wizard resumes on
"""

from enum import Enum, IntEnum

class Screens(str, Enum):
    LANDING = 'LandingScreen'
    CHECK_IN_OUT = 'CheckInOutScreen'
    OPERATOR_LOGIN = 'OperatorLoginScreen'
    DAILY_SALES = 'DailySalesScreen'
    DAILY_SALES_CONFIRM = 'DailySalesConfirmScreen'
    INCOME_REPORT = 'IncomeReportScreen'
    OUTCOME_REPORT = 'OutcomeReportScreen'
    INCOME_OUTPUT_RESUME = 'IncomeOutputResumeScreen'
    ALL_REPORTS = 'AllReportsScreen'


class WizardStep(IntEnum):
    """Close wizard steps, in the order the operator goes through them"""
    ITEMS = 1
    CASH = 2
    BANK = 3
    OTHER_EXPENSES = 4
    DELIVERY = 5
    NOTES = 6


# Draft field each step contributes
STEP_FIELDS = {
    WizardStep.ITEMS: 'items',
    WizardStep.CASH: 'cashReceived',
    WizardStep.BANK: 'bankTransfersReceived',
    WizardStep.OTHER_EXPENSES: 'otherCashExpenses',
    WizardStep.DELIVERY: 'deliveryCashPaid',
    WizardStep.NOTES: 'notes',
}

# Screen to resume on once a step has been completed
RESUME_SCREENS = {
    None: Screens.OPERATOR_LOGIN,
    WizardStep.ITEMS: Screens.DAILY_SALES_CONFIRM,
    WizardStep.CASH: Screens.INCOME_REPORT,
    WizardStep.BANK: Screens.OUTCOME_REPORT,
    WizardStep.OTHER_EXPENSES: Screens.OUTCOME_REPORT,
    WizardStep.DELIVERY: Screens.INCOME_OUTPUT_RESUME,
    WizardStep.NOTES: Screens.INCOME_OUTPUT_RESUME,
}


def resume_screen(draft):
    """Screen an interrupted wizard resumes on, given its draft"""
    try:
        step = WizardStep((draft or {}).get('stepPosition'))
    except ValueError:
        step = None
    return RESUME_SCREENS[step]
