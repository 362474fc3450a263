"""Closed capability vocabulary shared by roles, groups, overrides and the UI.

Capability naming: `can<Action><Area>`
  Actions: See, Create, Modify, Edit, Delete (plus a few area-specific verbs)
  Areas:   Users, Projects, Tasks, Stakeholders, RaidLogs, Communications,
           Surveys, MindMaps, ProcessMaps, GanttCharts, ChecklistTemplates,
           Reports, Roles, Groups, SecuritySettings, Email, System

Adding a member here changes the "total set" contract: every stored role,
group and override permission set must gain the new key in the same release.
"""

from __future__ import annotations

import enum

from changeflow.middleware.exceptions import ValidationError


class Capability(str, enum.Enum):
    # User management
    CAN_SEE_USERS = "canSeeUsers"
    CAN_CREATE_USERS = "canCreateUsers"
    CAN_MODIFY_USERS = "canModifyUsers"
    CAN_EDIT_USERS = "canEditUsers"
    CAN_DELETE_USERS = "canDeleteUsers"

    # Initiatives (projects)
    CAN_SEE_PROJECTS = "canSeeProjects"
    CAN_MODIFY_PROJECTS = "canModifyProjects"
    CAN_EDIT_PROJECTS = "canEditProjects"
    CAN_DELETE_PROJECTS = "canDeleteProjects"
    CAN_SEE_ALL_PROJECTS = "canSeeAllProjects"
    CAN_MODIFY_ALL_PROJECTS = "canModifyAllProjects"
    CAN_EDIT_ALL_PROJECTS = "canEditAllProjects"
    CAN_DELETE_ALL_PROJECTS = "canDeleteAllProjects"

    # Tasks
    CAN_SEE_TASKS = "canSeeTasks"
    CAN_MODIFY_TASKS = "canModifyTasks"
    CAN_EDIT_TASKS = "canEditTasks"
    CAN_DELETE_TASKS = "canDeleteTasks"

    # Stakeholders
    CAN_SEE_STAKEHOLDERS = "canSeeStakeholders"
    CAN_MODIFY_STAKEHOLDERS = "canModifyStakeholders"
    CAN_EDIT_STAKEHOLDERS = "canEditStakeholders"
    CAN_DELETE_STAKEHOLDERS = "canDeleteStakeholders"

    # RAID logs
    CAN_SEE_RAID_LOGS = "canSeeRaidLogs"
    CAN_MODIFY_RAID_LOGS = "canModifyRaidLogs"
    CAN_EDIT_RAID_LOGS = "canEditRaidLogs"
    CAN_DELETE_RAID_LOGS = "canDeleteRaidLogs"

    # Communications
    CAN_SEE_COMMUNICATIONS = "canSeeCommunications"
    CAN_MODIFY_COMMUNICATIONS = "canModifyCommunications"
    CAN_EDIT_COMMUNICATIONS = "canEditCommunications"
    CAN_DELETE_COMMUNICATIONS = "canDeleteCommunications"

    # Surveys
    CAN_SEE_SURVEYS = "canSeeSurveys"
    CAN_MODIFY_SURVEYS = "canModifySurveys"
    CAN_EDIT_SURVEYS = "canEditSurveys"
    CAN_DELETE_SURVEYS = "canDeleteSurveys"

    # Mind maps
    CAN_SEE_MIND_MAPS = "canSeeMindMaps"
    CAN_MODIFY_MIND_MAPS = "canModifyMindMaps"
    CAN_EDIT_MIND_MAPS = "canEditMindMaps"
    CAN_DELETE_MIND_MAPS = "canDeleteMindMaps"

    # Process maps
    CAN_SEE_PROCESS_MAPS = "canSeeProcessMaps"
    CAN_MODIFY_PROCESS_MAPS = "canModifyProcessMaps"
    CAN_EDIT_PROCESS_MAPS = "canEditProcessMaps"
    CAN_DELETE_PROCESS_MAPS = "canDeleteProcessMaps"

    # Gantt charts
    CAN_SEE_GANTT_CHARTS = "canSeeGanttCharts"
    CAN_MODIFY_GANTT_CHARTS = "canModifyGanttCharts"
    CAN_EDIT_GANTT_CHARTS = "canEditGanttCharts"
    CAN_DELETE_GANTT_CHARTS = "canDeleteGanttCharts"

    # Checklist templates
    CAN_SEE_CHECKLIST_TEMPLATES = "canSeeChecklistTemplates"
    CAN_MODIFY_CHECKLIST_TEMPLATES = "canModifyChecklistTemplates"
    CAN_EDIT_CHECKLIST_TEMPLATES = "canEditChecklistTemplates"
    CAN_DELETE_CHECKLIST_TEMPLATES = "canDeleteChecklistTemplates"

    # Reports & analytics
    CAN_SEE_REPORTS = "canSeeReports"
    CAN_MODIFY_REPORTS = "canModifyReports"
    CAN_EDIT_REPORTS = "canEditReports"
    CAN_DELETE_REPORTS = "canDeleteReports"

    # Security & role management
    CAN_SEE_ROLES = "canSeeRoles"
    CAN_MODIFY_ROLES = "canModifyRoles"
    CAN_EDIT_ROLES = "canEditRoles"
    CAN_DELETE_ROLES = "canDeleteRoles"
    CAN_SEE_GROUPS = "canSeeGroups"
    CAN_MODIFY_GROUPS = "canModifyGroups"
    CAN_EDIT_GROUPS = "canEditGroups"
    CAN_DELETE_GROUPS = "canDeleteGroups"
    CAN_SEE_SECURITY_SETTINGS = "canSeeSecuritySettings"
    CAN_MODIFY_SECURITY_SETTINGS = "canModifySecuritySettings"
    CAN_EDIT_SECURITY_SETTINGS = "canEditSecuritySettings"
    CAN_DELETE_SECURITY_SETTINGS = "canDeleteSecuritySettings"

    # Email
    CAN_SEND_EMAILS = "canSendEmails"
    CAN_SEND_BULK_EMAILS = "canSendBulkEmails"
    CAN_SEND_SYSTEM_EMAILS = "canSendSystemEmails"
    CAN_SEE_EMAIL_LOGS = "canSeeEmailLogs"
    CAN_MODIFY_EMAIL_TEMPLATES = "canModifyEmailTemplates"
    CAN_EDIT_EMAIL_SETTINGS = "canEditEmailSettings"

    # System administration
    CAN_SEE_SYSTEM_SETTINGS = "canSeeSystemSettings"
    CAN_MODIFY_SYSTEM_SETTINGS = "canModifySystemSettings"
    CAN_EDIT_SYSTEM_SETTINGS = "canEditSystemSettings"
    CAN_MANAGE_SYSTEM = "canManageSystem"

    def __str__(self) -> str:
        return self.value


# ── All known capabilities ──────────────────────────────────

ALL_CAPABILITIES: frozenset[Capability] = frozenset(Capability)

_BY_NAME: dict[str, Capability] = {c.value: c for c in Capability}


def parse_capability(name: str | Capability) -> Capability:
    """Return the Capability for a wire name; unknown names are rejected."""
    if isinstance(name, Capability):
        return name
    try:
        return _BY_NAME[name]
    except (KeyError, TypeError):
        raise ValidationError(f"Unknown capability: {name!r}", unknown=[str(name)]) from None
