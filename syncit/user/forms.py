"""Forms for the user blueprint."""

from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import DataRequired, Length, Optional, Regexp


class ProfileForm(FlaskForm):
    """Form for setting up or editing the signed-in user's profile."""

    name = StringField("Full Name", validators=[DataRequired(), Length(max=50)])
    phone = StringField(
        "Phone Number",
        validators=[
            Optional(),
            Length(max=20),
            Regexp(r"^[\d\s()+-]+$", message="Phone numbers may only hold digits."),
        ],
    )
    # Named after the JSON key the client sends.
    countryCode = StringField(  # noqa: N815
        "Country Code",
        validators=[Optional(), Regexp(r"^\+?\d{1,4}$", message="Invalid code.")],
    )
