reminder_subject_template = "Reminder: {task_title} is due soon"
overdue_subject_template = "Overdue: {task_title} needs attention"

reminder_text_template = """Hello {user_name},

Your task "{task_title}" is due at {due_date}.

This is a friendly reminder to help you stay on track!

Best regards,
{sender_name}"""

overdue_text_template = """Hello {user_name},

Your task "{task_title}" was due at {due_date} and is now overdue.

Please complete this task as soon as possible.

Best regards,
{sender_name}"""

notification_html_template = """<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">{sender_name}</h1>
  </div>
  <div style="padding: 20px;">
    <h2 style="color: #333;">{subject}</h2>
    <p>Hello {user_name},</p>
    <p>Your task "<strong>{task_title}</strong>" {due_phrase} <strong>{due_date}</strong>.</p>
    <p>{closing_line}</p>
    <div style="margin-top: 30px; padding: 15px; background: #f8f9fa; border-radius: 8px;">
      <p style="margin: 0; color: #666; font-size: 14px;">
        <a href="{base_url}/tasks" style="color: #667eea; text-decoration: none;">View your tasks</a> |
        <a href="{base_url}/settings" style="color: #667eea; text-decoration: none;">Manage notifications</a>
      </p>
    </div>
  </div>
  <div style="background: #f8f9fa; padding: 15px; text-align: center; color: #666; font-size: 12px;">
    <p>This notification was sent by {sender_name}</p>
  </div>
</div>"""

test_email_html_template = """<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 20px; text-align: center;">
    <h1 style="color: white; margin: 0;">{sender_name} - Test</h1>
  </div>
  <div style="padding: 20px;">
    <h2>{subject}</h2>
    <p>{message}</p>
    <p>If you received this email, the notification system is working correctly!</p>
  </div>
</div>"""
