from flask_wtf import FlaskForm
from wtforms import (
    BooleanField,
    FloatField,
    IntegerField,
    PasswordField,
    SelectField,
    SelectMultipleField,
    StringField,
    TextAreaField,
)
from wtforms.validators import (
    URL,
    DataRequired,
    Email,
    Length,
    NumberRange,
    Optional,
    Regexp,
)

ROLE_CHOICES = [("ADMIN", "Admin"), ("PM", "Project manager"), ("MEMBER", "Member")]
PROJECT_ROLE_CHOICES = [("OWNER", "Owner"), ("PM", "Project manager"), ("MEMBER", "Member")]
PRIORITY_CHOICES = [
    ("LOW", "Low"),
    ("MEDIUM", "Medium"),
    ("HIGH", "High"),
    ("CRITICAL", "Critical"),
]
PROJECT_STATUS_CHOICES = [
    ("", "Derived from dates"),
    ("RENCANA", "Planned"),
    ("SEKARANG", "Current"),
    ("SELESAI", "Done"),
]
SYNC_DIRECTION_CHOICES = [("push", "Push"), ("pull", "Pull"), ("both", "Both")]
SYNC_TABLE_CHOICES = [
    ("users", "Users"),
    ("projects", "Projects"),
    ("statuses", "Statuses"),
    ("tasks", "Tasks"),
    ("comments", "Comments"),
]
FILE_TYPE_CHOICES = [("image", "Image"), ("document", "Document")]


class SignupForm(FlaskForm):
    username = StringField(
        "Username",
        validators=[
            DataRequired(message="Username is required."),
            Length(max=80, message="Username must be 80 characters or fewer."),
            Regexp(
                r"^[A-Za-z0-9_.-]+$",
                message="Username may only include letters, numbers, dots, hyphens, and underscores.",
            ),
        ],
    )
    name = StringField("Name", [DataRequired()])
    email = StringField("Email", [DataRequired(), Email()])
    password = PasswordField(
        "Password",
        validators=[
            DataRequired(message="Password is required."),
            Length(min=8, message="Password must be at least 8 characters."),
        ],
    )


class UserForm(SignupForm):
    role = SelectField("Role", choices=ROLE_CHOICES, default="MEMBER")


class LoginForm(FlaskForm):
    email = StringField("Email or username", [DataRequired()])
    password = PasswordField("Password", [DataRequired()])


class ProjectForm(FlaskForm):
    name = StringField("Name", [DataRequired(), Length(max=200)])
    description = TextAreaField("Description", [Optional()])
    priority = SelectField("Priority", choices=PRIORITY_CHOICES, default="MEDIUM")
    status = SelectField("Status", choices=PROJECT_STATUS_CHOICES, validators=[Optional()])
    # ISO dates; parsed by the project service
    start_date = StringField("Start date", [Optional()])
    end_date = StringField("End date", [Optional()])
    banner_image = StringField("Banner image", [Optional(), Length(max=500)])


class MemberForm(FlaskForm):
    user_id = StringField("User", [DataRequired(message="A user is required.")])
    role = SelectField("Role", choices=PROJECT_ROLE_CHOICES, default="MEMBER")


class MemberRoleForm(FlaskForm):
    role = SelectField("Role", choices=PROJECT_ROLE_CHOICES, validators=[DataRequired()])


class TransferOwnershipForm(FlaskForm):
    user_id = StringField("New owner", [DataRequired(message="A user is required.")])


class StatusForm(FlaskForm):
    name = StringField("Name", [DataRequired(), Length(max=100)])
    order = IntegerField("Order", [Optional()])


class TaskForm(FlaskForm):
    title = StringField("Title", [DataRequired(), Length(max=255)])
    description = TextAreaField("Description")
    documentation = TextAreaField("Documentation")
    priority = SelectField("Priority", choices=PRIORITY_CHOICES, default="MEDIUM")
    due_date = StringField("Due date", [Optional()])
    estimated_hours = FloatField("Estimated hours", [Optional(), NumberRange(min=0)])
    actual_hours = FloatField("Actual hours", [Optional(), NumberRange(min=0)])
    progress = IntegerField("Progress", [Optional(), NumberRange(min=0, max=100)])
    status_id = StringField("Status", [Optional()])
    assignee_id = StringField("Assignee", [Optional()])


class CommentForm(FlaskForm):
    content = TextAreaField("Comment", [DataRequired(message="Comment cannot be empty.")])


class AttachmentForm(FlaskForm):
    file_name = StringField("File name", [DataRequired(), Length(max=255)])
    file_url = StringField("File URL", [DataRequired(), URL(require_tld=False)])
    file_type = SelectField("File type", choices=FILE_TYPE_CHOICES, default="document")
    file_size = IntegerField("File size", [Optional(), NumberRange(min=0)])
    task_id = StringField("Task", [Optional()])


class SyncForm(FlaskForm):
    direction = SelectField("Direction", choices=SYNC_DIRECTION_CHOICES, default="pull")
    tables = SelectMultipleField("Tables", choices=SYNC_TABLE_CHOICES, validators=[Optional()])
    dry_run = BooleanField("Dry run", default=False)
