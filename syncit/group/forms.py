"""Forms for the group blueprint.

Flask-WTF reads JSON request bodies, so these validate API payloads.
"""

from flask_wtf import FlaskForm
from wtforms import DateField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from syncit.core.constants import EVENT_TYPES, MEMBER_STATUSES


class GroupForm(FlaskForm):
    """Form for creating a new group."""

    name = StringField("Group Name", validators=[DataRequired(), Length(max=100)])
    description = TextAreaField("Description", validators=[Length(max=500)])


class EditGroupForm(FlaskForm):
    """Form for editing a group; every field is optional."""

    name = StringField("Group Name", validators=[Optional(), Length(max=100)])
    description = TextAreaField("Description", validators=[Length(max=500)])


class EventForm(FlaskForm):
    """Form for adding an event to a group calendar."""

    date = DateField("Date", validators=[DataRequired()])
    time = StringField("Time", validators=[Optional(), Length(max=20)])
    notes = TextAreaField("Notes", validators=[Length(max=500)])
    type = SelectField(
        "Time of Day",
        choices=[(t, t) for t in EVENT_TYPES],
        validators=[DataRequired()],
    )


class MemberStatusForm(FlaskForm):
    """Form for answering or blocking an invitation."""

    status = SelectField(
        "Status",
        choices=[(s, s) for s in MEMBER_STATUSES],
        validators=[DataRequired()],
    )
