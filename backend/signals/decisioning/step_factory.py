"""Consistent PlanStep construction."""
from typing import Optional


class StepFactory:
    def __init__(self, application_id: Optional[int], synced_email_id: int, email_date: Optional[str] = None):
        self.application_id = application_id
        self.synced_email_id = synced_email_id
        self.email_date = email_date

    def target(self, selector: str = "none", round_id: Optional[int] = None, application: bool = True) -> dict:
        return {
            "application_id": self.application_id if application else None,
            "round": {
                "selector": selector,
                "id": round_id,
                "scheduled_at": None,
                "window_minutes": 0,
                "stage": None,
                "result": None,
            },
        }

    def step(
        self,
        step_id: str,
        action: str,
        target: dict,
        params: Optional[dict] = None,
        preconditions: Optional[list] = None,
        evidence: Optional[list] = None,
        risk: str = "low",
        include_source: bool = False,
    ) -> dict:
        merged = dict(params or {})
        if include_source:
            merged["source"] = {"synced_email_id": self.synced_email_id}
        return {
            "step_id": step_id,
            "action": action,
            "target": target,
            "params": merged,
            "preconditions": list(preconditions or []),
            "evidence": list(evidence or []),
            "risk": str(risk),
        }

    def create_round(self, step_id, params, preconditions, evidence, risk="low") -> dict:
        return self.step(step_id, "create_round", self.target("none"), params, preconditions, evidence, risk, include_source=True)

    def update_round(self, step_id, selector, params, preconditions, evidence, risk="low") -> dict:
        return self.step(step_id, "update_round", self.target(selector), params, preconditions, evidence, risk, include_source=True)

    def set_pipeline_stage(self, step_id, stage, preconditions, evidence, risk="low") -> dict:
        return self.step(step_id, "set_pipeline_stage", self.target("none"), {"stage": stage}, preconditions, evidence, risk)

    def set_application_status(self, step_id, status, preconditions, evidence, risk="low") -> dict:
        return self.step(step_id, "set_application_status", self.target("none"), {"status": status}, preconditions, evidence, risk)

    def set_round_result(self, step_id, selector, result, completed_at, preconditions, evidence, risk="low") -> dict:
        params = {"result": result, "completed_at": completed_at or self.email_date}
        return self.step(step_id, "set_round_result", self.target(selector), params, preconditions, evidence, risk, include_source=True)

    def create_interview_feedback(self, step_id, selector, params, preconditions, evidence, risk="low", round_id=None) -> dict:
        params = {**params, "round_selector": selector}
        target = self.target(selector, round_id=round_id)
        return self.step(step_id, "create_interview_feedback", target, params, preconditions, evidence, risk, include_source=True)

    def create_company_feedback(self, step_id, params, preconditions, evidence, risk="low") -> dict:
        return self.step(step_id, "create_company_feedback", self.target("none"), params, preconditions, evidence, risk, include_source=True)

    def unmatched(self, step_id: str, action: str, params: dict, evidence: list) -> dict:
        """Steps that do not touch an application (opportunities, job listings)."""
        return self.step(step_id, action, self.target("none", application=False), params, [], evidence, "low", include_source=True)
