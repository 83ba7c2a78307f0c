"""Simulation errors raised before or while a strategy runs"""


class SimulationError(ValueError):
    """Base exception for the simulation engine"""

    pass


class InvalidLoanParameters(SimulationError):
    """Principal or term is not positive, or the rate is negative"""

    pass


class InvalidBudgetParameters(SimulationError):
    """Income/expenses are negative or a growth rate is below the -100% floor"""

    pass


class InvalidLineOfCreditParameters(SimulationError):
    """Credit line limit, rate or chunk size is negative, or the policy is unknown"""

    pass


class NonAmortizingPayment(SimulationError):
    """The base payment does not cover the first month's interest"""

    def __init__(self, payment: float, interest: float):
        self.payment = payment
        self.interest = interest
        super().__init__(
            f"payment {payment:.2f} does not exceed first month interest {interest:.2f}; "
            "the loan would never amortize"
        )
